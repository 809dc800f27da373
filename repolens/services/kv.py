"""
Key-value backends for the job store.

Two implementations of the same small contract: Redis in production and an
SQL table pair (SQLModel) for local development and tests. Values are stored
as JSON strings; reading them back is left to the store's unwrap step, since
some backends hand the string back and others an already decoded object.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

import redis
from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from repolens.core.config import Settings, settings
from repolens.core.database import get_engine, init_db, make_engine
from repolens.models.kv import KVEntry, KVSetMember

logger = logging.getLogger(__name__)


def _encode(value: Any) -> str:
    return value if isinstance(value, str) else json.dumps(value)


class KeyValueBackend(Protocol):
    def get(self, key: str) -> Any: ...

    def mget(self, keys: list[str]) -> list[Any]: ...

    def set(self, key: str, value: Any, only_if_absent: bool = False) -> bool: ...

    def sadd(self, key: str, member: str) -> None: ...

    def smembers(self, key: str) -> set[str]: ...

    def scan_keys(self, prefix: str) -> list[str]: ...

    def ping(self) -> bool: ...


class RedisBackend:
    def __init__(self, client: redis.Redis):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(redis.Redis.from_url(url, decode_responses=True))

    def get(self, key: str) -> Any:
        return self.client.get(key)

    def mget(self, keys: list[str]) -> list[Any]:
        if not keys:
            return []
        return list(self.client.mget(keys))

    def set(self, key: str, value: Any, only_if_absent: bool = False) -> bool:
        return bool(self.client.set(key, _encode(value), nx=only_if_absent))

    def sadd(self, key: str, member: str) -> None:
        self.client.sadd(key, member)

    def smembers(self, key: str) -> set[str]:
        return set(self.client.smembers(key))

    def scan_keys(self, prefix: str) -> list[str]:
        return list(self.client.scan_iter(match=f"{prefix}*", count=50))

    def ping(self) -> bool:
        return bool(self.client.ping())


class SQLBackend:
    def __init__(self, engine: Engine):
        self.engine = engine

    def get(self, key: str) -> Any:
        with Session(self.engine) as db:
            row = db.get(KVEntry, key)
            return row.value if row else None

    def mget(self, keys: list[str]) -> list[Any]:
        if not keys:
            return []
        with Session(self.engine) as db:
            rows = db.exec(select(KVEntry).where(KVEntry.key.in_(keys))).all()
            by_key = {r.key: r.value for r in rows}
        return [by_key.get(k) for k in keys]

    def set(self, key: str, value: Any, only_if_absent: bool = False) -> bool:
        encoded = _encode(value)
        with Session(self.engine) as db:
            row = db.get(KVEntry, key)
            if row is not None:
                if only_if_absent:
                    return False
                row.value = encoded
                row.updated_at = datetime.now(timezone.utc)
            else:
                row = KVEntry(key=key, value=encoded)
            db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Lost an insert race on the same key
                db.rollback()
                if only_if_absent:
                    return False
                raise
        return True

    def sadd(self, key: str, member: str) -> None:
        with Session(self.engine) as db:
            if db.get(KVSetMember, (key, member)) is not None:
                return
            db.add(KVSetMember(key=key, member=member))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()

    def smembers(self, key: str) -> set[str]:
        with Session(self.engine) as db:
            return set(db.exec(select(KVSetMember.member).where(KVSetMember.key == key)).all())

    def scan_keys(self, prefix: str) -> list[str]:
        with Session(self.engine) as db:
            return list(db.exec(select(KVEntry.key).where(KVEntry.key.startswith(prefix))).all())

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1


def create_backend(s: Settings) -> KeyValueBackend:
    if s.uses_redis:
        logger.info("Job store: using Redis backend")
        return RedisBackend.from_url(s.store_url)
    engine = get_engine() if s is settings else make_engine(s.store_url)
    init_db(engine)
    logger.info("Job store: using SQL backend (%s)", engine.url.get_backend_name())
    return SQLBackend(engine)

