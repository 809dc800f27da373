"""Key-value backends behind the job store."""
import fnmatch
from datetime import timedelta
from typing import get_type_hints

from sqlmodel import Session

from repolens.core.config import Settings
from repolens.models.kv import KVEntry, KVSetMember
from repolens.services.job_store import JobStore, job_key
from repolens.services.kv import RedisBackend, SQLBackend, create_backend


class FakeRedis:
    """The handful of redis-py calls the backend makes, with decode_responses=True semantics."""

    def __init__(self):
        self.values = {}
        self.sets = {}

    def get(self, key):
        return self.values.get(key)

    def mget(self, keys):
        return [self.values.get(k) for k in keys]

    def set(self, key, value, nx=False):
        if nx and key in self.values:
            return None
        self.values[key] = value
        return True

    def sadd(self, key, member):
        self.sets.setdefault(key, set()).add(member)

    def smembers(self, key):
        return set(self.sets.get(key, set()))

    def scan_iter(self, match=None, count=None):
        return iter([k for k in self.values if fnmatch.fnmatch(k, match)])

    def ping(self):
        return True


def test_job_store_on_redis():
    redis_client = FakeRedis()
    store = JobStore(RedisBackend(redis_client))
    job = store.create_job("https://github.com/acme/widgets", "user-a")
    assert isinstance(redis_client.values[job_key(job.id)], str)
    store.update_job(job.id, {"status": "processing"})
    assert [j.status for j in store.list_jobs_for_user("user-a")] == ["processing"]
    assert [j.id for j in store.list_jobs()] == [job.id]
    assert store.test_connection()


def test_redis_set_only_if_absent():
    backend = RedisBackend(FakeRedis())
    assert backend.set("k", {"a": 1}, only_if_absent=True) is True
    assert backend.set("k", {"a": 2}, only_if_absent=True) is False
    assert backend.get("k") == '{"a": 1}'


def test_sql_backend_contract(store):
    backend = store.backend
    assert backend.set("k", "v", only_if_absent=True)
    assert not backend.set("k", "w", only_if_absent=True)
    assert backend.set("k", {"x": 1})
    assert backend.get("k") == '{"x": 1}'
    assert backend.mget(["k", "missing"]) == ['{"x": 1}', None]
    backend.sadd("s", "a")
    backend.sadd("s", "a")
    backend.sadd("s", "b")
    assert backend.smembers("s") == {"a", "b"}
    assert backend.scan_keys("k") == ["k"]
    assert backend.ping()


def test_create_backend_picks_implementation():
    sql = create_backend(Settings(_env_file=None, store_url="sqlite:///:memory:"))
    assert isinstance(sql, SQLBackend)
    assert sql.ping()
    redis_backend = create_backend(Settings(_env_file=None, store_url="redis://localhost:6379/0"))
    assert isinstance(redis_backend, RedisBackend)


def test_sql_rows_carry_aware_timestamps():
    entry = KVEntry(key="k", value="v")
    member = KVSetMember(key="s", member="a")
    assert entry.updated_at.tzinfo is not None
    assert member.created_at.tzinfo is not None
    assert entry.updated_at.utcoffset() == timedelta(0)


def test_sql_overwrite_refreshes_updated_at(store):
    backend = store.backend
    assert backend.set("k", "v1")
    with Session(backend.engine) as db:
        first = db.get(KVEntry, "k").updated_at
    assert backend.set("k", "v2")
    with Session(backend.engine) as db:
        row = db.get(KVEntry, "k")
        assert row.value == "v2"
        assert row.updated_at.replace(tzinfo=None) >= first.replace(tzinfo=None)


def test_job_lifecycle_on_sql_backend(store):
    job = store.create_job("https://github.com/acme/widgets", "user-a")
    store.update_job(job.id, {"status": "processing"})
    done = store.update_job(job.id, {"status": "completed", "result": {"overallFeedback": "ok", "issues": []}})
    assert done.status == "completed"
    assert store.get_job(job.id).result == {"overallFeedback": "ok", "issues": []}


def test_backend_annotations_resolve_to_builtins():
    hints = get_type_hints(SQLBackend.smembers)
    assert hints["return"] == set[str]
    assert get_type_hints(RedisBackend.smembers)["return"] == set[str]
