"""Admin job queue: every job in the store, optionally filtered by status."""
from fastapi import APIRouter, Depends

from repolens.api.deps import get_job_store, require_admin
from repolens.models.job import JOB_STATUSES
from repolens.schemas.analysis import result_kind
from repolens.services.job_store import JobStore

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/jobs")
def queue_list(
    _: None = Depends(require_admin),
    store: JobStore = Depends(get_job_store),
    limit: int = 100,
    status_filter: str | None = None,
):
    jobs = store.list_jobs()
    if status_filter and status_filter in JOB_STATUSES:
        jobs = [j for j in jobs if j.status == status_filter]
    counts = {s: 0 for s in JOB_STATUSES}
    for j in jobs:
        counts[j.status] += 1
    rows = [
        {
            "id": j.id,
            "userId": j.user_id,
            "url": j.url,
            "kind": j.kind,
            "status": j.status,
            "resultKind": result_kind(j.result),
            "error": (j.error or "")[:80] or None,
            "createdAt": j.created_at,
            "updatedAt": j.updated_at,
        }
        for j in jobs[: max(limit, 0)]
    ]
    return {"jobs": rows, "counts": counts, "status_filter": status_filter or ""}
