"""
Local port forwarding.

Listens on a set of local ports and hands every accepted connection to a
forward function, stopping when the shared cancellation signal fires.
"""

from devforward.forwarding.cancellation import CancellationSignal
from devforward.forwarding.engine import Connection, ForwardFn, PortForwardingEngine
from devforward.forwarding.exceptions import (
    ForwardingCancelledError,
    ForwardingError,
    NoPortsError,
    PortBindError,
)

__all__ = [
    "CancellationSignal",
    "Connection",
    "ForwardFn",
    "PortForwardingEngine",
    "ForwardingError",
    "ForwardingCancelledError",
    "NoPortsError",
    "PortBindError",
]
