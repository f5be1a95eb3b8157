"""
Error types raised by DeskBridge services.
"""


class DeskBridgeError(Exception):
    """Base class for DeskBridge errors."""


class ServiceNotConfigured(DeskBridgeError):
    """No active assistant is configured for the requested service."""

    def __init__(self, service_id: str, detail: str = "no active assistant configured"):
        self.service_id = service_id
        super().__init__(f"Service '{service_id}': {detail}")


class ProviderUnavailable(DeskBridgeError):
    """The AI provider failed and no fallback produced a reply."""


class ProviderRunTimeout(ProviderUnavailable):
    """An assistant run did not reach a terminal state in time."""


class TicketGatewayError(DeskBridgeError):
    """A call to the issue tracker failed."""

    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class ChannelDeliveryError(DeskBridgeError):
    """Sending a message through an outbound channel failed."""
