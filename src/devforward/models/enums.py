"""
Enumeration types for devforward.

This module defines the enumeration types used for container lifecycle
tracking and configuration options.
"""

from enum import Enum


# =============================================================================
# Container Lifecycle Enums
# =============================================================================


class ContainerStatus(str, Enum):
    """
    Last known status of the devcontainer.

    State transitions:
        UNKNOWN -> RUNNING (start event or container found at startup)
        RUNNING -> DYING (die event)
        DYING -> RUNNING (restart event within the grace period)
        DYING -> STOPPED (grace period expired)
        Any -> STOPPED (event stream ended or forwarding cancelled)
    """

    UNKNOWN = "unknown"
    STARTING = "starting"
    RUNNING = "running"
    DYING = "dying"
    STOPPED = "stopped"


class ReactorPhase(str, Enum):
    """
    Phase of the lifecycle reactor.

    - UNKNOWN: No container seen yet, connections cannot be tunnelled
    - ACTIVE: Container running, forwarding allowed
    - GRACE_PENDING: Container died, waiting for a restart until the deadline
    - TERMINATED: Forwarding has been cancelled, the reactor stopped
    """

    UNKNOWN = "unknown"
    ACTIVE = "active"
    GRACE_PENDING = "grace_pending"
    TERMINATED = "terminated"


class LifecycleAction(str, Enum):
    """Docker container event actions the reactor reacts to."""

    START = "start"
    DIE = "die"
    RESTART = "restart"


# =============================================================================
# Configuration Enums
# =============================================================================


class LogLevel(str, Enum):
    """
    Logging verbosity levels.

    Levels (from most to least verbose):
        - FULL: Complete trace with detailed stack information
        - DEBUG: Debug messages and above
        - INFO: Informational messages and above
        - WARNING: Only warnings and errors
    """

    FULL = "full"
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
