"""Python client for the jobs API: submit, then poll until the job settles."""
from .poller import MAX_POLL_TIME, POLL_INTERVAL, JobPoller, JobsClient, JobsState

__all__ = ["JobPoller", "JobsClient", "JobsState", "MAX_POLL_TIME", "POLL_INTERVAL"]
