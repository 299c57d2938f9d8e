"""Domain exceptions raised by services and mapped to HTTP responses in main."""


class AlertCaseError(Exception):
    """Base class for domain errors."""


class NotFoundError(AlertCaseError):
    """A referenced case, user, team or rule does not exist."""

    def __init__(self, entity: str, identifier):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} not found: {identifier}")


class DomainValidationError(AlertCaseError):
    """A request is well-formed but not acceptable in the current state."""


class InvalidTransitionError(AlertCaseError):
    """A lifecycle event is not allowed from the case's current status."""

    def __init__(self, event: str, current_status: str, message: str | None = None):
        self.event = event
        self.current_status = current_status
        super().__init__(
            message or f"Cannot {event.lower()} a case in status {current_status}"
        )


class WebhookProcessingException(AlertCaseError):
    """The webhook body could not be read as an alert envelope."""


class AlertParseError(AlertCaseError):
    """A single alert inside an otherwise valid delivery is unusable."""


class WebhookSignatureError(AlertCaseError):
    """The webhook signature is missing or does not match."""
