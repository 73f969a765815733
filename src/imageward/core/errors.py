"""Error taxonomy for image operations"""

from typing import Optional

# API status codes worth another attempt besides 5xx
RETRYABLE_STATUS_CODES = frozenset({408, 429})


class ImageWardError(Exception):
    """Base class for all imageward errors"""


class ConfigurationError(ImageWardError):
    """A required field is missing or invalid; raised before any engine call"""


class TransportFailure(ImageWardError):
    """Connection-level failure talking to the engine"""


class APIFailure(ImageWardError):
    """The engine answered with a well-formed error response"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        """Whether the status code marks a transient condition"""
        if self.status_code is None:
            return False
        return self.status_code >= 500 or self.status_code in RETRYABLE_STATUS_CODES


class ImageNotFoundError(APIFailure):
    """Raised by a lookup of an image the engine does not hold"""

    def __init__(self, identifier: str):
        super().__init__(f"Image not found: {identifier}", status_code=404)
        self.identifier = identifier


class RetriesExhausted(ImageWardError):
    """An operation kept failing with retryable errors until attempts ran out"""

    def __init__(self, last_error: BaseException, attempts: int, description: Optional[str] = None):
        what = description or "operation"
        super().__init__(f"{what} failed after {attempts} attempt(s): {last_error}")
        self.last_error = last_error
        self.attempts = attempts
