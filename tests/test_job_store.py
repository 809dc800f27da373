"""Job store: creation, caller-scoped reads, partial updates, history, corrupt data."""
import json

import pytest

from repolens.core.errors import InvalidTransitionError, NotFoundError, StorageIntegrityError
from repolens.services.job_store import JobStore, job_key, user_key

URL = "https://github.com/acme/widgets"


def test_create_then_get_round_trip(store: JobStore):
    job = store.create_job(URL, "user-a")
    assert job.status == "pending"
    assert job.kind == "analysis"
    assert job.result is None and job.error is None
    assert job.created_at == job.updated_at
    assert job.created_at.endswith("Z")

    fetched = store.get_job(job.id)
    assert fetched is not None
    assert fetched.to_record() == job.to_record()


def test_ids_are_unique(store: JobStore):
    ids = [store.create_job(URL, "user-a").id for _ in range(25)]
    assert len(set(ids)) == len(ids)


def test_create_indexes_job_under_user(store: JobStore):
    job = store.create_job(URL, "user-a", kind="questions")
    assert store.backend.smembers(user_key("user-a")) == {job.id}
    assert json.loads(store.backend.get(job_key(job.id)))["kind"] == "questions"


def test_get_unknown_job_returns_none(store: JobStore):
    assert store.get_job("does-not-exist") is None


def test_ownership_isolation(store: JobStore):
    j1 = store.create_job(URL, "user-a")
    j2 = store.create_job("https://github.com/acme/gadgets", "user-b")

    assert store.get_job_for_user(j1.id, "user-a").id == j1.id
    with pytest.raises(NotFoundError) as exc:
        store.get_job_for_user(j1.id, "user-b")
    assert exc.value.message == "Job not found"
    with pytest.raises(NotFoundError) as missing:
        store.get_job_for_user("nope", "user-b")
    # Someone else's job and a missing one look the same
    assert missing.value.message == exc.value.message

    assert [j.id for j in store.list_jobs_for_user("user-b")] == [j2.id]


def test_list_newest_first(store: JobStore):
    jobs = [store.create_job(URL, "user-a") for _ in range(3)]
    for n, job in enumerate(jobs):
        record = {**job.to_record(), "createdAt": f"2024-05-0{n + 1}T12:00:00.000Z"}
        store.backend.set(job_key(job.id), record)
    listed = store.list_jobs_for_user("user-a")
    assert [j.id for j in listed] == [jobs[2].id, jobs[1].id, jobs[0].id]


def test_list_skips_corrupt_records(store: JobStore):
    good = store.create_job(URL, "user-a")
    bad = store.create_job(URL, "user-a")
    store.backend.set(job_key(bad.id), {"id": bad.id, "status": "weird"})
    assert [j.id for j in store.list_jobs_for_user("user-a")] == [good.id]


def test_list_empty_for_unknown_user(store: JobStore):
    assert store.list_jobs_for_user("nobody") == []


def test_update_merges_and_stamps(store: JobStore):
    job = store.create_job(URL, "user-a")
    updated = store.update_job(job.id, {"status": "processing"})
    assert updated.status == "processing"
    assert updated.url == URL
    assert updated.created_at == job.created_at
    assert updated.updated_at >= job.updated_at


def test_sequential_updates_leave_final_state(store: JobStore):
    job = store.create_job(URL, "user-a")
    store.update_job(job.id, {"status": "processing"})
    store.update_job(job.id, {"status": "completed", "result": {"overallFeedback": "ok", "issues": []}})
    final = store.get_job(job.id)
    assert final.status == "completed"
    assert final.result == {"overallFeedback": "ok", "issues": []}
    assert final.error is None


def test_update_ignores_immutable_fields(store: JobStore):
    job = store.create_job(URL, "user-a")
    updated = store.update_job(job.id, {
        "id": "other",
        "userId": "user-b",
        "url": "https://github.com/evil/repo",
        "createdAt": "1999-01-01T00:00:00.000Z",
        "status": "processing",
    })
    assert (updated.id, updated.user_id, updated.url, updated.created_at) == (job.id, "user-a", URL, job.created_at)
    assert updated.status == "processing"


def test_result_and_error_are_exclusive(store: JobStore):
    job = store.create_job(URL, "user-a")
    failed = store.update_job(job.id, {"status": "failed", "error": "boom", "result": {"issues": []}})
    assert failed.error == "boom"
    assert failed.result is None

    other = store.create_job(URL, "user-a")
    done = store.update_job(other.id, {"status": "completed", "result": {"issues": []}, "error": "stale"})
    assert done.result == {"issues": []}
    assert done.error is None


def test_terminal_job_is_not_updated_again(store: JobStore):
    job = store.create_job(URL, "user-a")
    store.update_job(job.id, {"status": "failed", "error": "boom"})
    with pytest.raises(InvalidTransitionError):
        store.update_job(job.id, {"status": "processing"})
    assert store.get_job(job.id).status == "failed"


def test_update_unknown_job(store: JobStore):
    with pytest.raises(NotFoundError):
        store.update_job("missing", {"status": "processing"})


def test_update_rejects_invalid_status(store: JobStore):
    job = store.create_job(URL, "user-a")
    with pytest.raises(ValueError):
        store.update_job(job.id, {"status": "exploded"})
    assert store.get_job(job.id).status == "pending"


def test_double_encoded_value_is_read(store: JobStore):
    job = store.create_job(URL, "user-a")
    store.backend.set(job_key(job.id), json.dumps(json.dumps(job.to_record())))
    assert store.get_job(job.id).to_record() == job.to_record()


def test_wrapped_value_is_read(store: JobStore):
    job = store.create_job(URL, "user-a")
    store.backend.set(job_key(job.id), {"value": json.dumps(job.to_record())})
    assert store.get_job(job.id).id == job.id


def test_invalid_record_reads_as_none(store: JobStore):
    store.backend.set(job_key("broken"), {"id": "broken", "url": URL})
    assert store.get_job("broken") is None
    store.backend.set(job_key("garbage"), "{definitely not json")
    assert store.get_job("garbage") is None


class _LossyBackend:
    """Accepts writes but hands back something else."""

    def __init__(self, inner):
        self.inner = inner

    def __getattr__(self, name):
        return getattr(self.inner, name)

    def get(self, key):
        raw = json.loads(self.inner.get(key))
        raw["status"] = "processing"
        return raw


def test_verification_failure_raises(store: JobStore):
    lossy = JobStore(_LossyBackend(store.backend))
    with pytest.raises(StorageIntegrityError):
        lossy.create_job(URL, "user-a")


def test_list_jobs_scans_every_user(store: JobStore):
    a = store.create_job(URL, "user-a")
    b = store.create_job(URL, "user-b")
    assert {j.id for j in store.list_jobs()} == {a.id, b.id}


def test_connection(store: JobStore):
    assert store.test_connection() is True


def test_connection_failure_is_reported_not_raised(store: JobStore):
    class Down:
        def ping(self):
            raise ConnectionError("refused")

    assert JobStore(Down()).test_connection() is False
