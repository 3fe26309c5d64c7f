"""Custom exceptions for the BridgeAPI client.

All exceptions inherit from BridgeAPIError to allow catching any client error.
Secrets (API secrets, bearer tokens, role passwords) are never included in
exception messages.
"""

from __future__ import annotations

from typing import Optional

# Substituted when an error response body is not a parseable error envelope.
FALLBACK_ERROR_MESSAGE = "unable to parse API error response"


class BridgeAPIError(Exception):
    """Base exception for all BridgeAPI client errors."""

    # Set when releasing the response also failed while this error propagated.
    close_error: Optional[BaseException] = None

    def with_context(self, context: str) -> BridgeAPIError:
        """Return a copy of this error whose message is prefixed with *context*.

        The copy keeps the concrete type (so ``except NotFoundError`` still
        works on an aggregate failure). Raise it ``from`` the original.
        """
        cls = type(self)
        wrapped = cls.__new__(cls)
        wrapped.__dict__.update(self.__dict__)
        wrapped.args = (f"{context}: {self}",)
        return wrapped


class ConfigurationError(BridgeAPIError):
    """Raised when the client is constructed with an unusable configuration."""


class AuthError(BridgeAPIError):
    """Raised when the API rejects the credential during login."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SecretFormatError(AuthError):
    """Raised when a bearer secret does not carry the expected prefix."""

    def __init__(self) -> None:
        super().__init__("unexpected format for api secret, regeneration may be needed")


class TransportError(BridgeAPIError):
    """Raised when a request could not be completed (connect failure, timeout)."""


class UnexpectedStatusError(BridgeAPIError):
    """Raised when the API answers with a status the operation does not accept."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class APIError(UnexpectedStatusError):
    """Error envelope returned by a resource route.

    Attributes
    ----------
    status_code:
        HTTP status of the response.
    message:
        Message from the ``{message, request_id}`` envelope, or the fallback
        message when the body could not be parsed.
    request_id:
        Server request ID for support tickets; ``None`` when absent.
    """

    def __init__(self, status_code: int, message: str, request_id: Optional[str] = None) -> None:
        rendered = f"API returned status {status_code}: {message}"
        if request_id:
            rendered += f" (request id: {request_id})"
        super().__init__(rendered, status_code)
        self.message = message
        self.request_id = request_id


class BadRequestError(APIError):
    """HTTP 400 from a resource route."""


class NotFoundError(APIError):
    """HTTP 404 from a resource route."""


class ConflictError(APIError):
    """HTTP 409, e.g. a non-unique cluster name."""


class DecodeError(BridgeAPIError):
    """Raised when a success response body cannot be decoded."""


class ResourceCloseError(BridgeAPIError):
    """Raised when releasing a response fails and nothing else went wrong."""


class ClientClosedError(BridgeAPIError):
    """Raised when an operation is attempted on a closed client."""


_STATUS_ERRORS: dict[int, type[APIError]] = {
    400: BadRequestError,
    404: NotFoundError,
    409: ConflictError,
}


def api_error_for_status(
    status_code: int, message: str, request_id: Optional[str] = None
) -> APIError:
    """Build the most specific :class:`APIError` subclass for *status_code*."""
    cls = _STATUS_ERRORS.get(status_code, APIError)
    return cls(status_code, message, request_id)
