"""
Job persistence on top of a key-value backend.

Layout: one JSON record per job under ``analysis-job:<id>`` and one set per
user under ``user-jobs:<userId>`` holding that user's job ids. Direct lookups
(share links) go through the job key; history goes through the user set, so
neither needs a full scan.

Every write is read back and compared with what was meant to be stored. The
store does not validate status transitions beyond refusing to touch a
terminal job; the runner is the only component that moves a job forward.
Two concurrent updates of the same job race and the later write wins.
"""
import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError

from repolens.core.errors import InvalidTransitionError, NotFoundError, StorageIntegrityError
from repolens.models.job import IMMUTABLE_FIELDS, Job, JobKind, is_valid_job, parse_iso, utc_now_iso
from repolens.services.kv import KeyValueBackend

logger = logging.getLogger(__name__)

KV_PREFIX = "analysis-job:"
USER_INDEX_PREFIX = "user-jobs:"

# Fields some backends use to wrap the real payload in yet another JSON string
_WRAPPER_FIELDS = ("value", "result")
_MAX_UNWRAP_DEPTH = 8


def unwrap(raw: Any) -> dict[str, Any] | None:
    """
    Peel string-encoded JSON layers off a stored value.

    A string is parsed as JSON; a mapping that is not yet a job record and has
    a ``value`` or ``result`` field holding a string gets that field parsed in
    its place. Repeats until a plain mapping is reached. Returns None when a
    layer is not valid JSON or the end result is not a mapping.
    """
    data = raw
    for _ in range(_MAX_UNWRAP_DEPTH):
        if isinstance(data, (bytes, bytearray)):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError:
                return None
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except ValueError:
                return None
            continue
        if not isinstance(data, dict):
            return None
        if is_valid_job(data):
            return data
        wrapped = next((data[f] for f in _WRAPPER_FIELDS if isinstance(data.get(f), str)), None)
        if wrapped is None:
            return data
        data = wrapped
    logger.warning("Gave up unwrapping stored value after %s layers", _MAX_UNWRAP_DEPTH)
    return None


def job_key(job_id: str) -> str:
    return f"{KV_PREFIX}{job_id}"


def user_key(user_id: str) -> str:
    return f"{USER_INDEX_PREFIX}{user_id}"


def _created_sort_key(job: Job) -> datetime:
    try:
        return parse_iso(job.created_at)
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)


class JobStore:
    def __init__(self, backend: KeyValueBackend):
        self.backend = backend

    def parse_job(self, raw: Any, job_id: str | None = None) -> Job | None:
        """Unwrap and validate a stored value; corrupt data is logged and reported as None."""
        data = unwrap(raw)
        if data is None:
            logger.warning("Unparseable job data: job_id=%s raw=%.200r", job_id, raw)
            return None
        if not is_valid_job(data):
            logger.warning("Job data failed structural validation: job_id=%s data=%.200r", job_id, data)
            return None
        try:
            return Job.model_validate(data)
        except ValidationError as e:
            logger.warning("Job data has wrong field types: job_id=%s errors=%s", job_id, e.errors())
            return None

    def _write_verified(self, job: Job, only_if_absent: bool = False) -> Job:
        key = job_key(job.id)
        record = job.to_record()
        if not self.backend.set(key, record, only_if_absent=only_if_absent):
            raise StorageIntegrityError(f"Job {job.id} already exists")
        stored = self.parse_job(self.backend.get(key), job.id)
        if stored is None or stored.to_record() != record:
            logger.error("Job verification failed: job_id=%s", job.id)
            raise StorageIntegrityError(f"Failed to verify stored job {job.id}")
        return stored

    def create_job(self, url: str, user_id: str, kind: JobKind = "analysis") -> Job:
        now = utc_now_iso()
        job = Job(
            id=str(uuid.uuid4()),
            user_id=user_id,
            url=url,
            status="pending",
            kind=kind,
            created_at=now,
            updated_at=now,
        )
        if not is_valid_job(job.to_record()):
            raise ValueError("Failed to create job: invalid data structure")
        stored = self._write_verified(job, only_if_absent=True)
        self.backend.sadd(user_key(user_id), job.id)
        logger.info("Created job %s (%s) for %s", job.id, kind, url)
        return stored

    def get_job(self, job_id: str) -> Job | None:
        raw = self.backend.get(job_key(job_id))
        if raw is None:
            logger.info("Job not found: %s", job_id)
            return None
        return self.parse_job(raw, job_id)

    def get_job_for_user(self, job_id: str, user_id: str) -> Job:
        """Caller-scoped lookup. Someone else's job is reported exactly like a missing one."""
        job = self.get_job(job_id)
        if job is None or job.user_id != user_id:
            raise NotFoundError("Job not found")
        return job

    def update_job(self, job_id: str, updates: Mapping[str, Any]) -> Job:
        existing = self.get_job(job_id)
        if existing is None:
            raise NotFoundError(f"Job {job_id} not found")
        if existing.is_terminal:
            raise InvalidTransitionError(f"Job {job_id} is already {existing.status}")

        ignored = IMMUTABLE_FIELDS.intersection(updates)
        if ignored:
            logger.warning("Ignoring immutable fields in update of job %s: %s", job_id, sorted(ignored))
        payload = {k: v for k, v in updates.items() if k not in IMMUTABLE_FIELDS and k != "updatedAt"}

        merged = {**existing.to_record(), **payload, "updatedAt": utc_now_iso()}
        merged = {k: v for k, v in merged.items() if v is not None}
        # result only on completed jobs, error only on failed ones
        if merged.get("status") != "completed":
            merged.pop("result", None)
        if merged.get("status") != "failed":
            merged.pop("error", None)

        if not is_valid_job(merged):
            raise ValueError(f"Failed to update job {job_id}: invalid data structure")
        try:
            job = Job.model_validate(merged)
        except ValidationError as e:
            raise ValueError(f"Failed to update job {job_id}: {e}") from e

        stored = self._write_verified(job)
        logger.info("Updated job %s: status=%s", job_id, stored.status)
        return stored

    def _load_many(self, ids: list[str]) -> list[tuple[str, Job | None]]:
        raws = self.backend.mget([job_key(i) for i in ids])
        return [(job_id, self.parse_job(raw, job_id)) for job_id, raw in zip(ids, raws)]

    def list_jobs_for_user(self, user_id: str) -> list[Job]:
        ids = sorted(self.backend.smembers(user_key(user_id)))
        if not ids:
            return []
        jobs = []
        for job_id, job in self._load_many(ids):
            if job is None:
                logger.warning("Dropping unreadable job %s from user history", job_id)
                continue
            if job.user_id != user_id:
                logger.warning("Dropping job %s indexed for another user", job_id)
                continue
            jobs.append(job)
        jobs.sort(key=_created_sort_key, reverse=True)
        return jobs

    def list_jobs(self) -> list[Job]:
        """Every readable job, newest first. Scans the key space; admin use only."""
        ids = [k[len(KV_PREFIX) :] for k in self.backend.scan_keys(KV_PREFIX)]
        jobs = [job for _, job in self._load_many(ids) if job is not None]
        jobs.sort(key=_created_sort_key, reverse=True)
        return jobs

    def test_connection(self) -> bool:
        try:
            ok = self.backend.ping()
        except Exception as e:
            logger.warning("Job store connection test failed: %s", e)
            return False
        if not ok:
            logger.warning("Job store ping returned %r", ok)
        return bool(ok)
