"""
Container lifecycle events from ``docker events``.

The event source runs ``docker events --format json`` filtered to the
devcontainer of one workspace, frames its stdout into lines with
LineFramingDecoder and parses each line into a LifecycleEvent.
"""

import asyncio
import json
from collections.abc import AsyncIterator
from dataclasses import dataclass

from devforward.config import config
from devforward.docker.exceptions import EventSourceError
from devforward.docker.labels import (
    LABEL_METADATA,
    label_filters,
    remote_user_from_metadata,
)
from devforward.docker.line_stream import LineFramingDecoder, iter_lines
from devforward.models.enums import LifecycleAction
from devforward.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Event Model
# =============================================================================


@dataclass(frozen=True)
class LifecycleEvent:
    """A single container event, reduced to what the reactor needs."""

    action: str
    identifier: str
    status: str = ""
    remote_user: str = ""

    @property
    def lifecycle_action(self) -> LifecycleAction | None:
        """The action as a LifecycleAction, or None for actions we ignore."""
        try:
            return LifecycleAction(self.action)
        except ValueError:
            return None

    @classmethod
    def from_json(cls, line: str) -> "LifecycleEvent":
        """
        Parse one ``docker events --format json`` record.

        Raises:
            ValueError: If the line is not a JSON object.
        """
        data = json.loads(line)
        if not isinstance(data, dict):
            raise ValueError("event is not a JSON object")

        actor = data.get("Actor") or {}
        action = data.get("Action") or data.get("status") or ""
        identifier = data.get("id") or actor.get("ID") or ""

        remote_user = ""
        if action == LifecycleAction.START.value:
            attributes = actor.get("Attributes") or {}
            try:
                remote_user = remote_user_from_metadata(attributes.get(LABEL_METADATA))
            except ValueError as e:
                logger.warning(f"Ignoring unreadable {LABEL_METADATA} on {identifier}: {e}")

        return cls(
            action=action,
            identifier=identifier,
            status=data.get("status") or "",
            remote_user=remote_user,
        )


async def parse_events(lines: AsyncIterator[str]) -> AsyncIterator[LifecycleEvent]:
    """Parse a stream of JSON lines, skipping blank and malformed ones."""
    async for line in lines:
        if not line.strip():
            continue
        try:
            yield LifecycleEvent.from_json(line)
        except ValueError as e:
            logger.warning(f"Skipping malformed event line: {e}")
            logger.debug(f"Malformed event line: {line[:200]}")


# =============================================================================
# Event Source
# =============================================================================


class DockerEventSource:
    """
    Runs ``docker events`` for one devcontainer and streams its output.

    Attributes:
        workspace: Workspace folder label to filter on.
        config_file: devcontainer.json path label to filter on.
        since: Replay window in seconds, so events that happened just before
            the source started are not missed.
    """

    def __init__(
        self,
        workspace: str,
        config_file: str,
        since: int | None = None,
        docker_binary: str | None = None,
        startup_wait: float | None = None,
        line_buffer_size: int | None = None,
    ):
        self.workspace = workspace
        self.config_file = config_file
        self.since = since if since is not None else config.EVENTS_SINCE_SECONDS
        self.docker_binary = docker_binary or config.DOCKER_BINARY
        self.startup_wait = (
            startup_wait
            if startup_wait is not None
            else config.EVENT_SOURCE_STARTUP_WAIT_SECONDS
        )
        self.line_buffer_size = line_buffer_size or config.LINE_BUFFER_SIZE
        self._process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task | None = None

    def command(self) -> list[str]:
        """Build the docker events command line."""
        cmd = [self.docker_binary, "events", "-f", "type=container"]
        for label in label_filters(self.workspace, self.config_file):
            cmd.extend(["-f", f"label={label}"])
        cmd.extend(["--format", "json", "--since", f"{self.since}s"])
        return cmd

    async def start(self) -> None:
        """
        Start the docker events process.

        Waits ``startup_wait`` seconds for an early error on stderr.

        Raises:
            EventSourceError: If the process cannot be started or reports an
                error (or exits) right away.
        """
        cmd = self.command()
        logger.debug(f"Starting event source: {' '.join(cmd)}")
        try:
            self._process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise EventSourceError(f"failed to run {self.docker_binary} events: {e}") from e

        try:
            early = await asyncio.wait_for(
                self._process.stderr.readline(), timeout=self.startup_wait
            )
        except asyncio.TimeoutError:
            early = None

        if early is not None:
            await self.close()
            message = early.decode(errors="replace").strip()
            if not message:
                message = f"docker events exited with code {self._process.returncode}"
            raise EventSourceError(message)

        self._stderr_task = asyncio.create_task(self._log_stderr())
        logger.info(f"Watching container events for {self.workspace}")

    async def _log_stderr(self) -> None:
        while True:
            line = await self._process.stderr.readline()
            if not line:
                return
            logger.warning(f"docker events: {line.decode(errors='replace').strip()}")

    async def chunks(self) -> AsyncIterator[bytes]:
        """Yield raw stdout chunks until the process ends."""
        if self._process is None:
            raise EventSourceError("event source has not been started")

        while True:
            chunk = await self._process.stdout.read(config.EVENT_READ_CHUNK_SIZE)
            if not chunk:
                logger.debug("Event source reached end of stream")
                return
            yield chunk

    async def events(self) -> AsyncIterator[LifecycleEvent]:
        """Yield parsed lifecycle events until the process ends."""
        decoder = LineFramingDecoder(self.line_buffer_size)
        async for event in parse_events(iter_lines(self.chunks(), decoder)):
            yield event

    async def close(self, timeout: float = 1.0) -> None:
        """Terminate the docker events process and wait for it to exit."""
        if self._stderr_task is not None:
            self._stderr_task.cancel()
            self._stderr_task = None

        process = self._process
        if process is None:
            return

        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("docker events did not exit in time, killing it")
            process.kill()
            await process.wait()
