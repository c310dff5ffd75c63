"""Exceptions raised by the compression orchestrator."""


class CompressionError(Exception):
    """Base exception for all orchestrator errors."""

    pass


class ResolutionFailed(CompressionError):
    """The source object could not be turned into a fetchable URL."""

    pass


class SubmissionFailed(CompressionError):
    """The transcode service rejected the job or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        self.status_code = status_code
        self.body = body
        detail = f"Rendi submit failed ({status_code}): {message}" if status_code else f"Rendi submit failed: {message}"
        super().__init__(detail)


class TransientPollError(CompressionError):
    """Polling hit a network error, a non-2xx reply or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StorageError(CompressionError):
    """An object store call failed."""

    pass


class FinalizationFailed(CompressionError):
    """The job succeeded but its result could not be copied into storage."""

    pass
