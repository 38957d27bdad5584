"""
Tunnel a local connection into a container with ``docker exec``.

Each forwarded connection gets its own ``docker exec -i`` process running
``socat`` inside the container, connected to the requested port on the
container's localhost. The local connection is wired to the process's stdin
and stdout.
"""

import asyncio
import shlex
from collections import deque

from devforward.config import config
from devforward.docker.exceptions import TunnelError
from devforward.forwarding.engine import Connection
from devforward.utils.logger import get_logger

logger = get_logger(__name__)

RELAY_CHUNK_SIZE = 65536
STDERR_TAIL_LINES = 20


async def relay(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    close_writer: bool = False,
) -> int:
    """
    Pipe data from reader to writer until EOF or error.

    Args:
        reader: AsyncIO stream reader.
        writer: AsyncIO stream writer.
        close_writer: Close the writer once the reader is exhausted, so the
            other side sees EOF.

    Returns:
        Number of bytes relayed.
    """
    total = 0
    try:
        while True:
            data = await reader.read(RELAY_CHUNK_SIZE)
            if not data:
                break
            writer.write(data)
            await writer.drain()
            total += len(data)
    except OSError as e:
        logger.debug(f"Relay stopped: {e}")
    finally:
        if close_writer and not writer.is_closing():
            writer.close()
    return total


class DockerExecTunnel:
    """Forwards connections to a port inside a container via docker exec."""

    def __init__(self, docker_binary: str | None = None, stop_timeout: float = 1.0):
        self.docker_binary = docker_binary or config.DOCKER_BINARY
        self.stop_timeout = stop_timeout

    def command(self, container_id: str, port: int, remote_user: str = "") -> list[str]:
        """Build the docker exec command line for one connection."""
        socat = f"socat - TCP:localhost:{port}"
        if remote_user:
            shell = f"su - {shlex.quote(remote_user)} -c {shlex.quote(socat)}"
        else:
            shell = socat
        return [self.docker_binary, "exec", "-i", container_id, "bash", "-c", shell]

    async def forward(
        self,
        connection: Connection,
        container_id: str,
        port: int,
        remote_user: str = "",
    ) -> None:
        """
        Relay a connection to ``port`` inside the container until either side ends.

        The connection is closed when this returns.

        Raises:
            TunnelError: If the docker exec process cannot be started.
        """
        log_prefix = f"[{connection.peer} -> {container_id[:12]}:{port}]"
        cmd = self.command(container_id, port, remote_user)
        logger.debug(f"{log_prefix} Starting tunnel: {shlex.join(cmd)}")

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            await connection.wait_closed()
            raise TunnelError(str(e), container_id, port) from e

        to_container = asyncio.create_task(
            relay(connection.reader, process.stdin, close_writer=True)
        )
        from_container = asyncio.create_task(relay(process.stdout, connection.writer))
        stderr_tail: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        stderr_task = asyncio.create_task(
            self._drain_stderr(process.stderr, stderr_tail, log_prefix)
        )

        try:
            # The container side ending means the service closed the connection.
            # The client side ending only closes socat's stdin.
            received = await from_container
            logger.debug(f"{log_prefix} Tunnel finished ({received} bytes received)")
        finally:
            to_container.cancel()
            from_container.cancel()
            await asyncio.gather(to_container, from_container, return_exceptions=True)
            await connection.wait_closed()
            await self._stop_process(process, log_prefix, stderr_task, stderr_tail)

    async def _drain_stderr(
        self,
        stream: asyncio.StreamReader,
        tail: deque[str],
        log_prefix: str,
    ) -> None:
        """Keep reading stderr so the process never blocks on a full pipe."""
        while True:
            chunk = await stream.read(RELAY_CHUNK_SIZE)
            if not chunk:
                return
            for line in chunk.decode(errors="replace").splitlines():
                text = line.strip()
                if text:
                    logger.debug(f"{log_prefix} docker exec: {text}")
                    tail.append(text)

    async def _stop_process(
        self,
        process: asyncio.subprocess.Process,
        log_prefix: str,
        stderr_task: asyncio.Task,
        stderr_tail: deque[str],
    ):
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()

        try:
            await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{log_prefix} Tunnel process still running, terminating")
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                process.kill()
                await process.wait()

        try:
            await asyncio.wait_for(stderr_task, timeout=self.stop_timeout)
        except asyncio.TimeoutError:
            logger.debug(f"{log_prefix} stderr still open after exit, not waiting for it")
        except OSError as e:
            logger.debug(f"{log_prefix} Reading stderr failed: {e}")

        if process.returncode is not None and process.returncode > 0:
            message = " / ".join(stderr_tail)
            logger.warning(
                f"{log_prefix} Tunnel process exited with code {process.returncode}"
                + (f": {message}" if message else "")
            )
