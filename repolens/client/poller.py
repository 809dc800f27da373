from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests

from repolens.core.errors import (
    ExternalFetchError,
    InputError,
    InvalidTransitionError,
    JobFailedError,
    NotFoundError,
    PollTimeoutError,
    RepoLensError,
)
from repolens.models.job import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

POLL_INTERVAL = 2.0
MAX_POLL_TIME = 5 * 60.0

_ERRORS_BY_STATUS: dict[int, type[RepoLensError]] = {
    400: InputError,
    404: NotFoundError,
    409: InvalidTransitionError,
}

Listener = Callable[[list[dict[str, Any]]], None]


class JobsState:
    """
    Observable list of the caller's jobs, newest first.
    Listeners get a copy of the list after every change.
    """

    def __init__(self, jobs: list[dict[str, Any]] | None = None):
        self._jobs: list[dict[str, Any]] = list(jobs or [])
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def list(self) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(j) for j in self._jobs]

    def get(self, job_id: str) -> dict[str, Any] | None:
        with self._lock:
            for job in self._jobs:
                if job.get("id") == job_id:
                    return dict(job)
        return None

    def set_jobs(self, jobs: list[dict[str, Any]]) -> None:
        with self._lock:
            self._jobs = [dict(j) for j in jobs]
        self._notify()

    def add(self, job: dict[str, Any]) -> None:
        with self._lock:
            self._jobs = [dict(job)] + [j for j in self._jobs if j.get("id") != job.get("id")]
        self._notify()

    def update(self, job_id: str, changes: dict[str, Any]) -> None:
        """Shallow merge into the job with this id; unknown ids are ignored."""
        with self._lock:
            self._jobs = [{**j, **changes} if j.get("id") == job_id else j for j in self._jobs]
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.list()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(snapshot)


class JobsClient:
    """HTTP client for the jobs API. The session keeps the identity cookie between calls."""

    def __init__(self, base_url: str = "http://localhost:8000", session: Any = None, timeout: float | None = 30.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        if self.timeout is not None:
            kwargs.setdefault("timeout", self.timeout)
        try:
            r = self.session.request(method, f"{self.base_url}{path}", **kwargs)
        except requests.RequestException as e:
            raise ExternalFetchError(f"Could not reach the jobs API: {e}") from e
        if 200 <= r.status_code < 300:
            try:
                return r.json()
            except ValueError as e:
                raise ExternalFetchError(f"Jobs API returned a non-JSON response (HTTP {r.status_code})") from e
        try:
            message = r.json().get("error") or ""
        except ValueError:
            message = ""
        err_cls = _ERRORS_BY_STATUS.get(r.status_code, RepoLensError)
        raise err_cls(message or f"Jobs API returned HTTP {r.status_code}")

    def submit(self, url: str, kind: str = "analysis") -> str:
        path = "/api/jobs/questions" if kind == "questions" else "/api/jobs/analyze"
        data = self._request("POST", path, json={"url": url})
        job_id = data.get("jobId") if isinstance(data, dict) else None
        if not job_id:
            raise RepoLensError("Jobs API did not return a job id")
        return job_id

    def get_job(self, job_id: str) -> dict[str, Any]:
        return self._request("GET", f"/api/jobs/{job_id}")

    def list_jobs(self) -> list[dict[str, Any]]:
        return self._request("GET", "/api/jobs")

    def connected(self) -> bool:
        return bool(self._request("GET", "/api/jobs/connection").get("connected"))


class JobPoller:
    """
    Submits one job and watches it until it settles.

    The loop stops on ``completed`` (``on_complete(result)``), on ``failed``
    (``on_error(JobFailedError)``), on a fetch error (``on_error(exc)``) or when
    ``ceiling`` seconds have passed since submission (``on_error(PollTimeoutError)``).
    Exactly one of the callbacks fires per submission, and none after ``cancel()``.
    The job itself is never touched by a timeout or a cancel.
    """

    def __init__(
        self,
        client: JobsClient,
        state: JobsState | None = None,
        interval: float = POLL_INTERVAL,
        ceiling: float = MAX_POLL_TIME,
        clock: Callable[[], float] = time.monotonic,
        sleeper: Callable[[float], Any] | None = None,
        on_complete: Callable[[dict[str, Any]], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ):
        self.client = client
        self.state = state or JobsState()
        self.interval = interval
        self.ceiling = ceiling
        self.clock = clock
        self.sleeper = sleeper or self._wait_unless_cancelled
        self.on_complete = on_complete
        self.on_error = on_error
        self.job_id: str | None = None
        self.job: dict[str, Any] | None = None
        self.error: Exception | None = None
        self.polls = 0
        self._started_at = 0.0
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._settled = False
        self._thread: threading.Thread | None = None

    def _wait_unless_cancelled(self, seconds: float) -> None:
        self._cancelled.wait(seconds)

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def done(self) -> bool:
        return self._done.is_set()

    def submit(self, url: str, kind: str = "analysis") -> str:
        """Create the job and seed the state with its first snapshot. A previous watch is cancelled."""
        if self._thread is not None and self._thread.is_alive():
            self.cancel()
            self._thread.join()
        self._cancelled = threading.Event()
        self._done = threading.Event()
        self._settled = False
        self.job = None
        self.error = None
        self.polls = 0
        self._started_at = self.clock()
        self.job_id = self.client.submit(url, kind)
        self.job = self.client.get_job(self.job_id)
        self.state.add(self.job)
        logger.info("Watching job %s (%s)", self.job_id, url)
        return self.job_id

    def run(self) -> dict[str, Any] | None:
        """Blocking poll loop; returns the last snapshot seen."""
        if self.job_id is None:
            raise RuntimeError("submit() must be called before run()")
        try:
            while not self.cancelled:
                if self.job and self.job.get("status") in TERMINAL_STATUSES:
                    self._finish_terminal(self.job)
                    break
                remaining = self.ceiling - (self.clock() - self._started_at)
                if remaining <= 0:
                    logger.warning("Stopped watching job %s after %.0fs", self.job_id, self.ceiling)
                    self._settle(error=PollTimeoutError(
                        "Analysis is taking longer than expected. Check back later or resubmit."
                    ))
                    break
                self.sleeper(min(self.interval, remaining))
                if self.cancelled:
                    break
                self.polls += 1
                self.job = self.client.get_job(self.job_id)
                self.state.update(self.job_id, self.job)
        except RepoLensError as e:
            logger.warning("Polling job %s failed: %s", self.job_id, e.message)
            self._settle(error=e)
        finally:
            self._done.set()
        return self.job

    def _finish_terminal(self, job: dict[str, Any]) -> None:
        if job["status"] == "completed":
            self._settle(result=job.get("result") or {})
        else:
            self._settle(error=JobFailedError(job.get("error") or "Analysis failed", job_id=self.job_id))

    def _settle(self, result: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        if self._settled or self.cancelled:
            return
        self._settled = True
        if error is not None:
            self.error = error
            if self.on_error:
                self.on_error(error)
        elif self.on_complete:
            self.on_complete(result or {})

    def start(self) -> threading.Thread:
        """Run the loop in a daemon thread."""
        self._thread = threading.Thread(target=self.run, name=f"job-poller-{self.job_id}", daemon=True)
        self._thread.start()
        return self._thread

    def cancel(self) -> None:
        """Stop polling and the ceiling; no callback fires afterwards."""
        self._cancelled.set()

    def wait(self, timeout: float | None = None) -> dict[str, Any] | None:
        """Block until the loop ends; returns the final job or raises the surfaced error."""
        if self._thread is not None:
            self._thread.join(timeout)
        elif not self.done:
            self.run()
        if self.error is not None:
            raise self.error
        return self.job
