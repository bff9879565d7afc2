"""
Webhook subsystem errors.

Registry errors (validation, authorization, not found) surface to the caller.
TransientDeliveryError is raised by the sender and absorbed by the worker.
SystemicError aborts a worker batch when the delivery store is unreachable.
"""


class WebhookError(Exception):
    """Base class for webhook subsystem errors."""
    pass


class ValidationError(WebhookError):
    """Malformed webhook registration input. Nothing was persisted."""
    pass


class AuthorizationError(WebhookError):
    """Missing/invalid session or insufficient role."""
    pass


class NotFoundError(WebhookError):
    """Referenced webhook or delivery does not exist (for this salon)."""
    pass


class TransientDeliveryError(WebhookError):
    """Network failure, timeout or non-2xx response during one delivery attempt."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SystemicError(WebhookError):
    """The delivery store cannot be reached; the current batch is aborted."""
    pass
