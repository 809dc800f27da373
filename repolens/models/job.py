"""Job record: pending → processing → completed | failed."""
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

JobStatus = Literal["pending", "processing", "completed", "failed"]
JobKind = Literal["analysis", "questions"]

JOB_STATUSES: tuple[str, ...] = ("pending", "processing", "completed", "failed")
JOB_KINDS: tuple[str, ...] = ("analysis", "questions")
TERMINAL_STATUSES = frozenset({"completed", "failed"})
# Wire names that a partial update must never change
IMMUTABLE_FIELDS = frozenset({"id", "userId", "url", "createdAt"})
REQUIRED_FIELDS = ("id", "userId", "url", "status", "createdAt", "updatedAt")


def utc_now_iso() -> str:
    """ISO-8601 UTC with millisecond precision and a Z suffix (2024-05-01T12:00:00.000Z)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_valid_job(data: Any) -> bool:
    """Structural check only: every required field present as a non-empty string, known status."""
    if not isinstance(data, dict):
        return False
    for name in REQUIRED_FIELDS:
        value = data.get(name)
        if not value or not isinstance(value, str):
            return False
    if data["status"] not in JOB_STATUSES:
        return False
    kind = data.get("kind")
    if kind is not None and kind not in JOB_KINDS:
        return False
    return True


class Job(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    user_id: str
    url: str
    status: JobStatus
    kind: JobKind = "analysis"
    created_at: str
    updated_at: str
    # AnalysisResult or QuestionsResult in wire form; only on completed jobs
    result: dict[str, Any] | None = None
    # Only on failed jobs
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    def public_view(self) -> dict[str, Any]:
        """Share-link view: the owner is never exposed."""
        data = self.to_record()
        data.pop("userId", None)
        return data

    def __repr__(self) -> str:
        return f"<Job {self.id} - {self.status}>"
