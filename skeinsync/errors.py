from typing import Optional


class RemoteApiError(Exception):
    """Any unrecoverable outcome of a call to the Shopify Admin API."""

    def __init__(self, message: str, raw_errors: Optional[list] = None):
        super().__init__(message)
        self.message = message
        self.raw_errors = list(raw_errors or [])


class TransportError(RemoteApiError):
    """Network failure or 5xx. Retried with exponential backoff."""

    def __init__(self, message: str, status_code: Optional[int] = None, raw_errors=None):
        super().__init__(message, raw_errors)
        self.status_code = status_code


class RateLimitError(RemoteApiError):
    """HTTP 429. Retried after the server's Retry-After hint."""

    def __init__(self, message: str, retry_after: float):
        super().__init__(message)
        self.retry_after = retry_after


class RemoteValidationError(RemoteApiError):
    """GraphQL `errors` or mutation `userErrors` on a 2xx response."""


class AuthError(RemoteApiError):
    """Rejected credentials (401/403)."""


class ConfigurationError(Exception):
    """A connection has no usable shop domain or access token."""


def join_messages(errors: list) -> str:
    return "; ".join(str(e.get("message", "")) if isinstance(e, dict) else str(e) for e in errors)
