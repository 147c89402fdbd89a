from typing import Optional


class RaindropError(Exception):
    """Base exception for client errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, hint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.hint = hint


class RequestBuildError(RaindropError):
    """Raised when a request cannot be built. Nothing has been sent."""


class StatusCodeError(RaindropError):
    """Raised when the server answers with a status we do not decode."""

    def __init__(self, status_code: int, expected: int = 200):
        super().__init__(f"Unexpected status code: {status_code} (expected {expected} or 400)", status_code)
        self.expected = expected


class ResponseDecodeError(RaindropError):
    """Raised when a response body cannot be read or decoded."""


class AuthorizationCodeError(RaindropError):
    """Raised when the OAuth redirect carries no authorization code."""

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Can't get authorization code: {reason}", status_code)
        self.reason = reason


class TokenExchangeError(RaindropError):
    """Raised when the token endpoint refuses a code exchange or refresh."""

    def __init__(self, message: str, status_code: Optional[int] = None, error: Optional[str] = None):
        super().__init__(
            message,
            status_code,
            hint="Check that client_id, client_secret and redirect_uri match the app settings.",
        )
        self.error = error
