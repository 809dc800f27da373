import logging
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv

# .env is loaded from the project root wherever uvicorn is started
_PROJ_ROOT = Path(__file__).resolve().parent.parent
load_dotenv(_PROJ_ROOT / ".env")

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from repolens.api.admin import router as admin_router
from repolens.api.deps import get_job_store, get_llm_client
from repolens.api.jobs import router as jobs_router
from repolens.core.config import is_openai_configured, settings, validate_settings
from repolens.core.errors import RepoLensError
from repolens.core.rate_limit import limiter
from repolens.core.session import set_identity_cookie
from repolens.logging import log_request, setup_logging
from repolens.services.job_store import JobStore
from repolens.services.llm import LLMClient

setup_logging()
log = logging.getLogger("repolens")


def _cors_origins_list() -> list[str]:
    if not settings.cors_origins or settings.cors_origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in settings.cors_origins.split(",") if o.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Missing configuration is fatal before any request is served
    validate_settings()
    store = get_job_store()
    log.info("Job store reachable: %s", "yes" if store.test_connection() else "NO (check STORE_URL)")
    log.info("OPENAI_API_KEY loaded: %s", "yes" if is_openai_configured() else "NO (add OPENAI_API_KEY=sk-... to .env)")
    yield


app = FastAPI(
    title="RepoLens API",
    description="Asynchronous code review of public GitHub repositories",
    lifespan=lifespan,
)
app.state.limiter = limiter


def _error_response(request: Request, status_code: int, message: str, **extra) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    body = {"error": message, "status_code": status_code, **extra}
    if rid:
        body["request_id"] = rid
    response = JSONResponse(status_code=status_code, content=body)
    # The cookie set by the identity dependency went out with the discarded response
    new_user_id = getattr(request.state, "new_user_id", None)
    if new_user_id:
        set_identity_cookie(response, new_user_id)
    return response


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    log.warning("Rate limit exceeded: path=%s limit=%s", request.url.path, exc.detail)
    return _error_response(request, 429, "Too many requests. Please wait a minute.")


@app.exception_handler(RepoLensError)
def repolens_exception_handler(request: Request, exc: RepoLensError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return _error_response(request, exc.status_code, exc.message)


def _jsonable_errors(errs) -> list[dict]:
    # pydantic puts the raw exception under "ctx" for some error types
    return [{k: v for k, v in e.items() if k in ("type", "loc", "msg")} for e in errs]


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errs = exc.errors()
    log.warning(
        "Request validation error (422): path=%s method=%s detail=%s",
        request.url.path,
        request.method,
        errs,
    )
    first = errs[0] if errs else {}
    return _error_response(request, 422, first.get("msg") or "Invalid request.", detail=_jsonable_errors(errs))


app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_response(request, exc.status_code, exc.detail if isinstance(exc.detail, str) else str(exc.detail))


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("Unhandled exception: path=%s %s", request.url.path, exc)
    return _error_response(request, 500, "Unexpected server error.")


@app.middleware("http")
async def request_id_and_latency(request: Request, call_next):
    request.state.request_id = str(uuid.uuid4())
    start = time.perf_counter()
    response = await call_next(request)
    latency_ms = (time.perf_counter() - start) * 1000
    response.headers["X-Request-ID"] = request.state.request_id
    log_request(log, request.state.request_id, request.method, request.url.path, response.status_code, latency_ms)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(jobs_router)
app.include_router(admin_router)


@app.get("/health")
def health(store: JobStore = Depends(get_job_store)):
    return {
        "status": "ok",
        "store": "ok" if store.test_connection() else "error",
        "openai_configured": is_openai_configured(),
    }


@app.get("/health/ai")
def health_ai(llm: LLMClient = Depends(get_llm_client)):
    """Live OpenAI round trip; keys are never echoed."""
    if not llm.keys:
        return {"ok": False, "latency_ms": 0.0, "error": "OPENAI_API_KEY is not configured"}
    ok, latency_ms, err = llm.ping()
    return {"ok": ok, "latency_ms": round(latency_ms, 2), "error": err}
