from .analysis import AnalysisResult, Issue, QuestionsResult, Severity, result_kind
from .jobs import ConnectionStatus, SubmitRequest, SubmitResponse

__all__ = [
    "AnalysisResult",
    "ConnectionStatus",
    "Issue",
    "QuestionsResult",
    "Severity",
    "SubmitRequest",
    "SubmitResponse",
    "result_kind",
]
