"""Exception hierarchy for the webhook delivery engine.

Every error raised by the engine inherits from WebhookEngineError so callers
can catch the whole family with one except clause.
"""


class WebhookEngineError(Exception):
    """Base exception for all webhook engine errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "webhook_engine_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert exception to API-friendly dictionary."""
        return {"error": {"code": self.code, "message": self.message}}


class ConfigurationError(WebhookEngineError):
    """Endpoint configuration rejected at creation time (bad URL, no events)."""

    code: str = "configuration_error"


class ValidationError(WebhookEngineError):
    """Invalid input provided to an engine operation."""

    code: str = "validation_error"


class NotFoundError(WebhookEngineError):
    """Requested endpoint or delivery does not exist for the tenant."""

    code: str = "not_found"


class InvalidTransitionError(WebhookEngineError):
    """A delivery was asked to move between states the state machine forbids."""

    code: str = "invalid_transition"

    def __init__(self, delivery_id: str, current: str, target: str) -> None:
        self.delivery_id = delivery_id
        self.current = current
        self.target = target
        super().__init__(
            f"Delivery {delivery_id} cannot move from {current} to {target}"
        )


class DispatchError(WebhookEngineError):
    """The transaction creating delivery rows could not commit."""

    code: str = "dispatch_error"
