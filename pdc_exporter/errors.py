"""Exception types raised by the Power Datacenter client and session."""

from typing import Optional


class PDCError(Exception):
    """Base exception for Power Datacenter errors."""
    pass


class PDCConnectionError(PDCError):
    """Exception raised when a request cannot be built or sent."""
    pass


class PDCHTTPError(PDCError):
    """Exception raised when the API answers with an unexpected status.

    Attributes:
        status_code: HTTP status code of the response
        reason: HTTP reason phrase
        body: Decoded response body text
    """

    def __init__(self, status_code: int, reason: Optional[str], body: str):
        self.status_code = status_code
        self.reason = reason or ""
        self.body = body
        super().__init__(f"HTTP {status_code} {self.reason}: {body}")


class PDCAuthError(PDCError):
    """Exception raised when login does not yield a session cookie."""
    pass


class PDCDecodeError(PDCError):
    """Exception raised when a response body cannot be decoded."""
    pass


class ConfigError(Exception):
    """Exception raised for missing or invalid configuration."""
    pass
