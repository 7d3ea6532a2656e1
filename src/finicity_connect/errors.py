"""Typed errors raised by the Finicity API client."""

from typing import Optional

__all__ = ["ApiError", "AuthError"]


class ApiError(Exception):
    """A failed Finicity API call.

    Non-2xx responses and transport failures are both normalized into this
    type so callers can branch on ``status`` and ``code`` uniformly.

    Args:
        message: Human readable error message (from the API when available).
        status: HTTP status code; 500 when no response was obtained at all.
        code: Provider error code from the response body, if any.
        transport_failure: ``True`` when the request never produced an HTTP
            response (DNS, connection refused, unreadable body).
    """

    def __init__(
        self,
        message: str,
        status: int,
        code: Optional[str] = None,
        transport_failure: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.transport_failure = transport_failure

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(message={self.message!r}, "
            f"status={self.status}, code={self.code!r})"
        )

    @property
    def is_auth_failure(self) -> bool:
        return self.status in (401, 403)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500 and not self.transport_failure


class AuthError(ApiError):
    """Failure of the partner authentication (token) endpoint."""
