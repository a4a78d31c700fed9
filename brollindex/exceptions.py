"""Exception hierarchy for broll-index."""

from __future__ import annotations


class BrollIndexError(Exception):
    """Base exception for all broll-index failures."""

    pass


class SetupError(BrollIndexError):
    """Raised when a run cannot start (missing ffmpeg, credentials, or project folder)."""

    pass


class MissingAPIKeyError(SetupError):
    """Raised when the Gemini API key is not configured."""

    def __init__(self, env_var: str = "GEMINI_API_KEY"):
        super().__init__(f"Missing {env_var}. Add it to .env or export it in your shell.")
        self.env_var = env_var


class UploadError(BrollIndexError):
    """Raised when a video cannot be uploaded or activated on the provider."""

    pass


class FileProcessingError(UploadError):
    """Raised when the provider reports the uploaded file as FAILED."""

    pass


class FileActivationTimeout(UploadError):
    """Raised when an uploaded file does not become ACTIVE in time."""

    pass


class ClassificationError(BrollIndexError):
    """Raised when the classification response is empty or cannot be parsed."""

    pass


class RetryExhaustedError(BrollIndexError):
    """Raised when a retried operation fails on its final attempt."""

    def __init__(self, operation: str, attempts: int, cause: BaseException):
        super().__init__(f"{operation} failed after {attempts} attempts: {cause}")
        self.operation = operation
        self.attempts = attempts
        self.cause = cause


class MediaToolError(BrollIndexError):
    """Raised when ffmpeg or ffprobe exits with an error."""

    pass


class CatalogIntegrityError(BrollIndexError):
    """Raised when a merge would leave clips pointing at unknown videos."""

    pass


class JobAlreadyRunningError(BrollIndexError):
    """Raised when an analysis job is already in flight for a project."""

    def __init__(self, key: str):
        super().__init__(f"Analysis already running for {key!r}")
        self.key = key
