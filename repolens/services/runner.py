"""
Background execution of one job.

The runner is the only writer of status transitions:
pending → processing → completed | failed. Whatever goes wrong inside a run
(GitHub, the LLM, a timeout, a bug) ends in a ``failed`` write carrying a
readable message, so no job is left in ``processing`` by an exception.
"""
import asyncio
import logging
from typing import Protocol

from repolens.core.errors import RepoLensError
from repolens.services.analyze import analyze_code
from repolens.services.github import FileContent
from repolens.services.job_store import JobStore
from repolens.services.llm import LLMClient
from repolens.services.questions import generate_questions

logger = logging.getLogger(__name__)


class RepositoryFetcher(Protocol):
    def fetch(self, url: str) -> list[FileContent]: ...


def failure_message(exc: BaseException) -> str:
    if isinstance(exc, RepoLensError):
        return exc.message
    return str(exc) or "Analysis failed"


class JobRunner:
    def __init__(self, store: JobStore, fetcher: RepositoryFetcher, llm: LLMClient, timeout: float = 600.0):
        self.store = store
        self.fetcher = fetcher
        self.llm = llm
        self.timeout = timeout

    async def run(self, job_id: str) -> None:
        """Run a job to a terminal state. Nothing is returned or raised; the store holds the outcome."""
        writes: list[asyncio.Future] = []
        try:
            await asyncio.wait_for(self._execute(job_id, writes), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Job %s timed out after %ss", job_id, self.timeout)
            await self._drain(job_id, writes)
            await self._fail(job_id, f"Job timed out after {self.timeout:g} seconds")
        except Exception as e:
            logger.exception("Job %s failed: %s", job_id, e)
            await self._fail(job_id, failure_message(e))

    async def _execute(self, job_id: str, writes: list[asyncio.Future]) -> None:
        job = await asyncio.to_thread(self.store.get_job, job_id)
        if job is None:
            logger.warning("Job %s not found; nothing to run", job_id)
            return
        if job.status != "pending":
            logger.warning("Job %s is already %s; not running it again", job_id, job.status)
            return

        await self._write(writes, job_id, {"status": "processing"})
        logger.info("Job %s processing: kind=%s url=%s", job_id, job.kind, job.url)

        files = await asyncio.to_thread(self.fetcher.fetch, job.url)
        if job.kind == "questions":
            result = (await generate_questions(files, job.url, self.llm)).to_wire()
        else:
            result = (await analyze_code(files, self.llm)).to_wire()

        await self._write(writes, job_id, {"status": "completed", "result": result})
        logger.info("Job %s completed", job_id)

    async def _write(self, writes: list[asyncio.Future], job_id: str, updates: dict) -> None:
        # A cancelled await must not abandon a write already running in a worker thread
        fut = asyncio.ensure_future(asyncio.to_thread(self.store.update_job, job_id, updates))
        writes.append(fut)
        await asyncio.shield(fut)

    async def _drain(self, job_id: str, writes: list[asyncio.Future]) -> None:
        """Wait for store writes the timeout left running, so the failure lands last."""
        for fut in writes:
            try:
                await fut
            except Exception:
                logger.exception("Store write for job %s failed after the timeout", job_id)

    async def _fail(self, job_id: str, message: str) -> None:
        try:
            await asyncio.to_thread(self.store.update_job, job_id, {"status": "failed", "error": message})
        except Exception:
            logger.exception("Could not record failure of job %s", job_id)
