from typing import List, Optional


class ClimateSageError(Exception):
    """Base class for every error the service turns into user-visible text."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RemoteServiceError(ClimateSageError):
    """Non-2xx response or malformed envelope from an upstream API."""

    def __init__(self, message: str, status_code: Optional[int] = None, http_status: int = 502):
        super().__init__(message)
        # status_code is the upstream status, http_status what we answer with
        self.status_code = status_code
        self.http_status = http_status
        self.failures: List["RemoteServiceError"] = []


class QuizGenerationError(ClimateSageError):
    pass


class MediaAccessError(ClimateSageError):
    pass


class StorageCorruptionError(ClimateSageError):
    """Stored data could not be decoded. Logged, never raised to callers."""
