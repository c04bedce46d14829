# homematch/errors.py
from typing import Any, Optional


class HomeMatchError(Exception):
    """Base class for errors raised by the service layer."""


class ServiceUnavailableError(HomeMatchError):
    """A required external collaborator (data store, provider key) is not configured."""


class PostgrestError(HomeMatchError):
    def __init__(self, message: str, status: Optional[int] = None,
                 code: Optional[str] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.details = details


class ZillowAPIError(HomeMatchError):
    def __init__(self, message: str, status: Optional[int] = None, text: str = ""):
        super().__init__(message)
        self.status = status
        self.text = text


class ZillowRateLimitError(ZillowAPIError):
    def __init__(self, message: str = "Rate limit exceeded", text: str = ""):
        super().__init__(message, status=429, text=text)
