import hmac
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Query, Request, Response

from repolens.core.config import settings
from repolens.core.session import get_or_create_user_id
from repolens.services.github import GitHubFetcher
from repolens.services.job_store import JobStore
from repolens.services.kv import create_backend
from repolens.services.llm import LLMClient
from repolens.services.runner import JobRunner


@lru_cache()
def get_job_store() -> JobStore:
    return JobStore(create_backend(settings))


@lru_cache()
def get_llm_client() -> LLMClient:
    return LLMClient.from_settings(settings)


@lru_cache()
def get_fetcher() -> GitHubFetcher:
    return GitHubFetcher.from_settings(settings)


def get_runner(
    store: JobStore = Depends(get_job_store),
    fetcher: GitHubFetcher = Depends(get_fetcher),
    llm: LLMClient = Depends(get_llm_client),
) -> JobRunner:
    return JobRunner(store, fetcher, llm, timeout=settings.job_timeout_seconds)


def get_user_id(request: Request, response: Response) -> str:
    return get_or_create_user_id(request, response)


def require_admin(
    x_admin_secret: str | None = Header(None, alias="X-Admin-Secret"),
    admin_secret: str | None = Query(None, description="Admin secret"),
) -> None:
    """Header or query secret, compared in constant time."""
    expected = (settings.admin_secret or "").strip()
    if not expected:
        raise HTTPException(status_code=503, detail="Admin endpoints are not configured (ADMIN_SECRET missing).")
    secret = (x_admin_secret or admin_secret or "").encode("utf-8")
    if not hmac.compare_digest(secret, expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Forbidden.")
