"""Port forwarding exception classes."""


class ForwardingError(Exception):
    """Base exception for port forwarding operations."""

    pass


class NoPortsError(ForwardingError):
    """No ports were given to forward."""

    def __init__(self):
        super().__init__("at least one port should be specified")


class ForwardingCancelledError(ForwardingError):
    """Forwarding was cancelled before or while waiting on an operation."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        message = "forwarding has been cancelled"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PortBindError(ForwardingError):
    """A local port could not be bound."""

    def __init__(self, port: int, message: str):
        self.port = port
        super().__init__(f"failed to listen on port {port}: {message}")
