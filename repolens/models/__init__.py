from .job import (
    IMMUTABLE_FIELDS,
    JOB_STATUSES,
    TERMINAL_STATUSES,
    Job,
    JobKind,
    JobStatus,
    is_valid_job,
    utc_now_iso,
)
from .kv import KVEntry, KVSetMember

__all__ = [
    "IMMUTABLE_FIELDS",
    "JOB_STATUSES",
    "TERMINAL_STATUSES",
    "Job",
    "JobKind",
    "JobStatus",
    "KVEntry",
    "KVSetMember",
    "is_valid_job",
    "utc_now_iso",
]
