from functools import lru_cache

from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from .config import settings


def _normalized_database_url(raw_url: str) -> str:
    """
    STORE_URL normalisation for the SQL key-value backend:
    - postgres:// or postgresql:// without a driver -> psycopg3 dialect.
    - Everything else (SQLite etc.) is left alone.
    """
    if not raw_url:
        return "sqlite:///./repolens.db"
    raw_url = raw_url.strip()
    if raw_url.startswith("postgres://"):
        return "postgresql+psycopg://" + raw_url[len("postgres://") :]
    if raw_url.startswith("postgresql://") and "+psycopg" not in raw_url.split("://", 1)[0]:
        return "postgresql+psycopg://" + raw_url[len("postgresql://") :]
    return raw_url


def make_engine(url: str) -> Engine:
    url = _normalized_database_url(url)
    # In-memory SQLite: one shared connection so tables created by init_db are visible to every session
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    use_static_pool = url.startswith("sqlite") and ":memory:" in url
    return create_engine(
        url,
        connect_args=connect_args,
        poolclass=StaticPool if use_static_pool else None,
    )


@lru_cache()
def get_engine() -> Engine:
    return make_engine(settings.store_url)


def init_db(engine: Engine | None = None) -> None:
    # Registers kv_entry / kv_set_member on SQLModel.metadata
    from repolens.models import kv  # noqa: F401

    SQLModel.metadata.create_all(engine or get_engine())
