from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

Severity = Literal["Critical", "High", "Medium", "Low"]
SEVERITY_ORDER: dict[str, int] = {"Critical": 0, "High": 1, "Medium": 2, "Low": 3}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class Issue(_CamelModel):
    category: str
    severity: Severity
    file_location: str = ""
    code_snippet: str = ""
    explanation: str = ""
    recommendation: str = ""
    code_example: str = ""
    impact: str = ""


class AnalysisResult(_CamelModel):
    overall_feedback: str
    issues: list[Issue] = []

    def issues_by_severity(self) -> list[Issue]:
        """Display order only; stored order is whatever the pipeline produced."""
        return sorted(self.issues, key=lambda i: SEVERITY_ORDER.get(i.severity, len(SEVERITY_ORDER)))


class QuestionsResult(_CamelModel):
    questions: list[str]
    repository_url: str
    generated_at: str


def result_kind(result: dict[str, Any] | None) -> str | None:
    """Tell the two result shapes apart the way list badges and share pages need it."""
    if not isinstance(result, dict):
        return None
    if "questions" in result and "repositoryUrl" in result:
        return "questions"
    if "issues" in result or "overallFeedback" in result:
        return "analysis"
    return None
