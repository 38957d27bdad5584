"""
Forwarder configuration.

A global Config instance that can be modified at runtime (the CLI writes
its options into it before starting the forwarder).
"""

import datetime
import os
from dataclasses import dataclass

from devforward.models.enums import LogLevel


@dataclass
class ForwarderConfig:
    """Forwarder runtime configuration."""

    # Network Configuration
    LISTEN_HOST: str = "127.0.0.1"

    # Lifecycle Configuration
    GRACE_PERIOD_SECONDS: float = 5.0  # How long a died container may take to restart
    EVENTS_SINCE_SECONDS: int = 10  # Replay window so a fresh "start" is not missed
    EVENT_SOURCE_STARTUP_WAIT_SECONDS: float = 0.5

    # Buffer Configuration
    LINE_BUFFER_SIZE: int = 16384
    EVENT_READ_CHUNK_SIZE: int = 4096
    DISPATCH_QUEUE_SIZE: int = 16
    ACCEPT_RETRY_DELAY_SECONDS: float = 0.1  # Pause after a failed accept (e.g. EMFILE)

    # Shutdown Configuration
    DRAIN_TIMEOUT_SECONDS: float = 1.0

    # Docker Configuration
    DOCKER_BINARY: str = "docker"
    DEVCONTAINER_DIR: str = ".devcontainer"
    DEVCONTAINER_JSON: str = "devcontainer.json"

    # Logging Configuration
    LOG_LEVEL: LogLevel = LogLevel.INFO
    LOG_FILE: str = ""

    def get_devcontainer_json_path(self, workspace: str) -> str:
        """Get the devcontainer.json path for a workspace folder."""
        return os.path.join(workspace, self.DEVCONTAINER_DIR, self.DEVCONTAINER_JSON)

    def get_log_file_path(self) -> str:
        """
        Get the log file path.

        Defaults to a dated file in the current directory, one per day.
        """
        if self.LOG_FILE:
            return self.LOG_FILE
        date_string = datetime.date.today().strftime("%Y%m%d")
        return f"forwardports-{date_string}.log"


config = ForwarderConfig()
