"""Code review pipeline: grouped LLM calls, issue filtering, summary fallback."""
import asyncio

import pytest

from repolens.core.errors import ExternalAnalysisError
from repolens.services.analyze import analyze_code, review_group, summarize_issues
from repolens.services.prompts import CATEGORY_GROUPS, FALLBACK_FEEDBACK, MAX_ISSUES_PER_GROUP


class StubLLM:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error

    def complete_json(self, messages):
        if self.error is not None:
            raise self.error
        return self.response


def _issue(category, severity="Medium"):
    return {"category": category, "severity": severity, "explanation": "x", "recommendation": "y"}


def test_analysis_covers_every_group(fake_llm, widget_files):
    result = asyncio.run(analyze_code(widget_files, fake_llm))
    assert len(result.issues) == len(CATEGORY_GROUPS)
    assert result.overall_feedback == "Clean structure; a few risky spots."
    # Groups in order, first category of each
    assert [i.category for i in result.issues] == [next(iter(g.web)) for g in CATEGORY_GROUPS]


def test_issue_cap_per_group(fake_llm, widget_files):
    fake_llm.issues_per_group = MAX_ISSUES_PER_GROUP + 3
    result = asyncio.run(analyze_code(widget_files, fake_llm))
    assert len(result.issues) == MAX_ISSUES_PER_GROUP * len(CATEGORY_GROUPS)


def test_summary_failure_falls_back(fake_llm, widget_files):
    fake_llm.summary_error = ExternalAnalysisError("summary broke")
    result = asyncio.run(analyze_code(widget_files, fake_llm))
    assert result.overall_feedback == FALLBACK_FEEDBACK
    assert len(result.issues) == len(CATEGORY_GROUPS)


def test_group_failure_fails_the_review(fake_llm, widget_files):
    fake_llm.error = ExternalAnalysisError("provider down")
    with pytest.raises(ExternalAnalysisError):
        asyncio.run(analyze_code(widget_files, fake_llm))


def test_review_group_drops_foreign_and_malformed_issues():
    group = CATEGORY_GROUPS[0]
    llm = StubLLM({"issues": [
        _issue("architecture & component design"),
        _issue("Security & Best Practices"),
        {"category": "State Management & Data Flow", "severity": "Apocalyptic"},
        "not an issue",
        _issue("State Management & Data Flow", "Critical"),
    ]})
    issues = review_group(llm, group, "react", "code")
    assert [(i.category, i.severity) for i in issues] == [
        ("Architecture & Component Design", "Medium"),
        ("State Management & Data Flow", "Critical"),
    ]


def test_review_group_uses_python_checklist():
    group = CATEGORY_GROUPS[0]
    llm = StubLLM({"issues": [_issue("Architecture & Module Design"), _issue("Architecture & Component Design")]})
    issues = review_group(llm, group, "python", "code")
    assert [i.category for i in issues] == ["Architecture & Module Design"]


def test_review_group_rejects_missing_issue_list():
    with pytest.raises(ExternalAnalysisError):
        review_group(StubLLM({"findings": []}), CATEGORY_GROUPS[0], "react", "code")


def test_summary_without_feedback_falls_back():
    assert summarize_issues(StubLLM({"overallFeedback": "  "}), []) == FALLBACK_FEEDBACK
    assert summarize_issues(StubLLM({"overallFeedback": " Good. "}), []) == "Good."


def test_issues_by_severity(fake_llm, widget_files):
    result = asyncio.run(analyze_code(widget_files, fake_llm))
    result.issues[2].severity = "Critical"
    assert result.issues_by_severity()[0].severity == "Critical"
    wire = result.to_wire()
    assert set(wire) == {"overallFeedback", "issues"}
    assert "fileLocation" in wire["issues"][0]
