from .config import settings
from .database import get_engine, init_db

__all__ = ["settings", "get_engine", "init_db"]
