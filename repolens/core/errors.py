"""Exception taxonomy shared by the store, the collaborators and the HTTP layer."""


class RepoLensError(Exception):
    status_code = 502

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class ConfigurationError(RepoLensError):
    status_code = 500


class InputError(RepoLensError):
    status_code = 400


class NotFoundError(RepoLensError):
    """Unknown id and someone else's job look exactly the same."""

    status_code = 404


class InvalidTransitionError(RepoLensError):
    status_code = 409


class StorageIntegrityError(RepoLensError):
    """What was written could not be read back as a valid record."""

    status_code = 500


class ExternalFetchError(RepoLensError):
    pass


class RepositoryNotFoundError(ExternalFetchError):
    pass


class PrivateRepositoryError(ExternalFetchError):
    pass


class RateLimitError(ExternalFetchError):
    pass


class ExternalAnalysisError(RepoLensError):
    pass


class PollTimeoutError(RepoLensError):
    """Client side only; the job itself keeps running."""

    status_code = 504


class JobFailedError(RepoLensError):
    """A watched job ended in ``failed``; the message is the job's error."""

    def __init__(self, message: str = "", job_id: str | None = None):
        super().__init__(message)
        self.job_id = job_id
