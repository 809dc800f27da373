import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from repolens.api.deps import get_job_store, get_runner, get_user_id
from repolens.core.errors import InputError, NotFoundError
from repolens.core.rate_limit import READ_LIMIT, SUBMIT_LIMIT, limiter
from repolens.models.job import JobKind
from repolens.schemas.jobs import ConnectionStatus, SubmitRequest, SubmitResponse
from repolens.services.github import clean_github_url, is_valid_github_url
from repolens.services.job_store import JobStore
from repolens.services.runner import JobRunner

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["jobs"])


def _submit(kind: JobKind, body: SubmitRequest, background_tasks: BackgroundTasks, user_id: str, store: JobStore, runner: JobRunner) -> SubmitResponse:
    url = (body.url or "").strip()
    if not is_valid_github_url(url):
        log.warning("Rejected %s submission: url=%r", kind, url)
        raise InputError("Invalid GitHub repository URL")
    job = store.create_job(clean_github_url(url), user_id, kind=kind)
    # Runs after the response is sent; the caller polls GET /api/jobs/{id}
    background_tasks.add_task(runner.run, job.id)
    return SubmitResponse(job_id=job.id, status=job.status)


@router.post("/jobs/analyze", response_model=SubmitResponse)
@limiter.limit(SUBMIT_LIMIT)
def submit_analysis(
    request: Request,
    body: SubmitRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_user_id),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_runner),
):
    """Start a code review of a public GitHub repository."""
    return _submit("analysis", body, background_tasks, user_id, store, runner)


@router.post("/jobs/questions", response_model=SubmitResponse)
@limiter.limit(SUBMIT_LIMIT)
def submit_questions(
    request: Request,
    body: SubmitRequest,
    background_tasks: BackgroundTasks,
    user_id: str = Depends(get_user_id),
    store: JobStore = Depends(get_job_store),
    runner: JobRunner = Depends(get_runner),
):
    """Start generating review questions for a public GitHub repository."""
    return _submit("questions", body, background_tasks, user_id, store, runner)


@router.get("/jobs")
def list_jobs(user_id: str = Depends(get_user_id), store: JobStore = Depends(get_job_store)):
    return [job.to_record() for job in store.list_jobs_for_user(user_id)]


@router.get("/jobs/connection", response_model=ConnectionStatus)
def connection(store: JobStore = Depends(get_job_store)):
    """History is unavailable when this says false; the UI must not treat it as an error page."""
    ok = store.test_connection()
    return ConnectionStatus(connected=ok, error=None if ok else "Job store is not reachable")


@router.get("/jobs/{job_id}")
def get_job(job_id: str, user_id: str = Depends(get_user_id), store: JobStore = Depends(get_job_store)):
    return store.get_job_for_user(job_id, user_id).to_record()


@router.get("/share/{job_id}")
@limiter.limit(READ_LIMIT)
def get_shared_job(request: Request, job_id: str, store: JobStore = Depends(get_job_store)):
    """Read-only results by share link (the job id). Only finished reviews are shared."""
    job = store.get_job(job_id)
    if job is None or job.status != "completed":
        raise NotFoundError("Results not found")
    return job.public_view()
