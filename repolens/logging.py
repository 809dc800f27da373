"""
Logging for the API process and the jobs it runs in the background.

Everything goes to stdout in one format. The request middleware writes the
access line itself (request id, status, latency), so uvicorn's own access log
and the per-call chatter of the HTTP and SQL libraries only show warnings.
"""
import logging
import sys

from repolens.core.config import settings
from repolens.core.errors import ConfigurationError

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# One INFO line per outbound request or SQL statement
QUIET_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "urllib3", "openai", "sqlalchemy.engine")


def resolve_level(level: int | str | None = None) -> int:
    """LOG_LEVEL names (``debug``, ``INFO``) or numeric levels; None reads the setting."""
    if level is None:
        level = settings.log_level
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ConfigurationError(f"Unknown LOG_LEVEL {level!r}")
    return value


def setup_logging(level: int | str | None = None, format_string: str = LOG_FORMAT) -> int:
    resolved = resolve_level(level)
    logging.basicConfig(level=resolved, format=format_string, stream=sys.stdout, force=True)
    for name in ("uvicorn", "uvicorn.error", "repolens"):
        logging.getLogger(name).setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
    return resolved


def log_request(
    logger: logging.Logger,
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: float,
) -> None:
    """Access line; 5xx at ERROR and 4xx at WARNING so failures stand out."""
    if status >= 500:
        level = logging.ERROR
    elif status >= 400:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(
        level,
        "request_id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request_id,
        method,
        path,
        status,
        latency_ms,
    )
