"""Exceptions raised by the escalation subsystem."""


class EscalationError(Exception):
    """Base class for escalation errors."""


class DuplicateAlertError(EscalationError):
    """An alert with the same id is already registered."""

    def __init__(self, alert_id: str):
        super().__init__(f"Alert {alert_id} is already registered")
        self.alert_id = alert_id


class AlertIdExhaustedError(EscalationError):
    """No free alert id could be allocated."""


class ChatDeliveryError(EscalationError):
    """The chat gateway rejected or failed to deliver a message."""

    def __init__(self, method: str, description: str, status_code: int = None):
        super().__init__(f"{method} failed: {description}")
        self.method = method
        self.description = description
        self.status_code = status_code


class InvalidCallbackError(EscalationError):
    """An accept button payload could not be decoded."""
