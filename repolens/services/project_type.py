"""Heuristic project classification: weighted path and content signals, majority threshold."""
import re
from dataclasses import dataclass, field

from repolens.services.github import FileContent

CONFIDENCE_THRESHOLD = 0.6

_WEB_SOURCE = re.compile(r"\.(jsx?|tsx?)$")

# (substring, weight) checked against the lower-cased path
_PYTHON_PATH_SIGNALS = (
    ("requirements.txt", 3),
    ("setup.py", 3),
    ("__init__.py", 1),
    ("/tests/test_", 1),
)
_WEB_PATH_SIGNALS = (
    ("package.json", 3),
    ("next.config.", 3),
    ("/components/", 2),
    ("/pages/", 2),
    ("tailwind.config.", 1),
    (".eslintrc", 1),
)
_PYTHON_CONTENT_SIGNALS = (("import flask", 2), ("import django", 2), ("import pandas", 2))
_WEB_CONTENT_SIGNALS = (("import react", 2), ("from react", 2), ("import * as react", 2))


@dataclass
class Indicators:
    python: int = 0
    react: int = 0

    def __add__(self, other: "Indicators") -> "Indicators":
        return Indicators(self.python + other.python, self.react + other.react)

    @property
    def total(self) -> int:
        return self.python + self.react


@dataclass
class ProjectType:
    type: str  # "python" | "react" | "unknown"
    confidence: float
    indicators: Indicators = field(default_factory=Indicators)


def path_indicators(path: str) -> Indicators:
    # Leading slash so top-level directories match the "/components/" style signals
    p = "/" + path.lower().lstrip("/")
    ind = Indicators()
    if p.endswith(".py"):
        ind.python += 2
    ind.python += sum(w for s, w in _PYTHON_PATH_SIGNALS if s in p)
    if _WEB_SOURCE.search(p):
        ind.react += 2
    ind.react += sum(w for s, w in _WEB_PATH_SIGNALS if s in p)
    return ind


def content_indicators(content: str) -> Indicators:
    c = content.lower()
    return Indicators(
        python=sum(w for s, w in _PYTHON_CONTENT_SIGNALS if s in c),
        react=sum(w for s, w in _WEB_CONTENT_SIGNALS if s in c),
    )


def determine_project_type(files: list[FileContent]) -> ProjectType:
    indicators = Indicators()
    for f in files:
        indicators = indicators + path_indicators(f.path) + content_indicators(f.content)

    if indicators.total == 0:
        return ProjectType("unknown", 0.0, indicators)

    python_confidence = indicators.python / indicators.total
    react_confidence = indicators.react / indicators.total
    if python_confidence > CONFIDENCE_THRESHOLD:
        return ProjectType("python", python_confidence, indicators)
    if react_confidence > CONFIDENCE_THRESHOLD:
        return ProjectType("react", react_confidence, indicators)
    return ProjectType("unknown", max(python_confidence, react_confidence), indicators)
