"""
Multi-port forwarding engine.

The engine listens on a fixed set of local ports and hands every accepted
connection to a forward function together with the local port it arrived on.
It knows nothing about where the bytes go; that is the forward function's job.

Layout:
    listener(port A) -> acceptor task ─┐
    listener(port B) -> acceptor task ─┼─> dispatch queue -> dispatcher task
    listener(port C) -> acceptor task ─┘                        │
                                            one task per connection: forward_fn(conn, port)

Shutdown is driven by a CancellationSignal: once it fires, the listeners are
closed, the acceptors and the dispatcher exit, connections that were accepted
but not dispatched are closed, and in-flight forward calls are cancelled.
Every step of the teardown is bounded by the drain timeout.
"""

import asyncio
import socket
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass

from devforward.config import config
from devforward.forwarding.cancellation import CancellationSignal
from devforward.forwarding.exceptions import (
    ForwardingCancelledError,
    ForwardingError,
    NoPortsError,
    PortBindError,
)
from devforward.utils.logger import format_traceback, get_logger

logger = get_logger(__name__)


# =============================================================================
# Connection
# =============================================================================


@dataclass
class Connection:
    """An accepted local connection, wrapped in asyncio streams."""

    reader: asyncio.StreamReader
    writer: asyncio.StreamWriter
    local_port: int
    peer: tuple | None = None

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        if not self.writer.is_closing():
            self.writer.close()

    async def wait_closed(self, timeout: float = 1.0) -> None:
        """Close the connection and wait (bounded) for the transport to go away."""
        self.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=timeout)
        except (OSError, asyncio.TimeoutError):
            pass


ForwardFn = Callable[[Connection, int], Awaitable[None]]


def _close_socket(sock: socket.socket) -> None:
    try:
        sock.close()
    except OSError as e:
        logger.debug(f"Error closing socket: {e}")


def _close_accepted(result: tuple[socket.socket, tuple]) -> None:
    sock, _ = result
    _close_socket(sock)


# =============================================================================
# Engine
# =============================================================================


class PortForwardingEngine:
    """
    Accepts connections on several local ports and dispatches them.

    Attributes:
        ports: Ports to listen on, in bind order.
        listen_host: Local address the listeners bind to.
        queue_size: Capacity of the dispatch queue. Acceptors block while it
            is full, so a slow dispatcher throttles new accepts.
        drain_timeout: Upper bound in seconds for each teardown step.
    """

    def __init__(
        self,
        ports: Iterable[int],
        forward_fn: ForwardFn,
        listen_host: str | None = None,
        queue_size: int | None = None,
        drain_timeout: float | None = None,
    ):
        """
        Create the engine without binding any socket.

        Raises:
            NoPortsError: If ``ports`` is empty.
        """
        ports = tuple(ports)
        if not ports:
            raise NoPortsError()

        self.ports = ports
        self.forward_fn = forward_fn
        self.listen_host = listen_host or config.LISTEN_HOST
        self.queue_size = queue_size or config.DISPATCH_QUEUE_SIZE
        self.drain_timeout = (
            drain_timeout if drain_timeout is not None else config.DRAIN_TIMEOUT_SECONDS
        )

        self._listeners: list[socket.socket] = []
        self._queue: asyncio.Queue[socket.socket] | None = None
        self._acceptors: list[asyncio.Task] = []
        self._dispatcher: asyncio.Task | None = None
        self._connection_tasks: set[asyncio.Task] = set()
        self._cancellation: CancellationSignal | None = None
        self._started = False

    @property
    def listeners(self) -> list[socket.socket]:
        """Listeners that are currently open, in bind order."""
        return [listener for listener in self._listeners if listener.fileno() != -1]

    @property
    def bound_ports(self) -> list[int]:
        """Local ports of the open listeners, in bind order."""
        return [listener.getsockname()[1] for listener in self.listeners]

    @property
    def active_connections(self) -> int:
        """Number of connections currently handed to the forward function."""
        return len(self._connection_tasks)

    # =========================================================================
    # Startup
    # =========================================================================

    async def start(self, cancellation: CancellationSignal) -> asyncio.Task:
        """
        Bind all ports and start accepting connections.

        Args:
            cancellation: Signal that stops the engine when triggered.

        Returns:
            A task that finishes once the engine has fully shut down.

        Raises:
            ForwardingCancelledError: If ``cancellation`` already fired. No
                socket is opened in that case.
            PortBindError: If any port could not be bound. Listeners opened
                before the failure are closed again.
            ForwardingError: If the engine was already started.
        """
        if cancellation.is_cancelled():
            raise ForwardingCancelledError(cancellation.reason)
        if self._started:
            raise ForwardingError("forwarding engine has already been started")

        for port in self.ports:
            try:
                listener = self._listen(port)
            except OSError as e:
                logger.error(f"Failed to listen on {self.listen_host}:{port}: {e}")
                self._close_listeners()
                self._listeners.clear()
                raise PortBindError(port, str(e)) from e
            self._listeners.append(listener)
            logger.info(f"Listening on {self.listen_host}:{port}")

        self._started = True
        self._cancellation = cancellation
        self._queue = asyncio.Queue(maxsize=self.queue_size)

        for listener in self._listeners:
            port = listener.getsockname()[1]
            self._acceptors.append(
                asyncio.create_task(self._accept_loop(listener), name=f"accept-{port}")
            )
        self._dispatcher = asyncio.create_task(self._dispatch_loop(), name="dispatch")

        return asyncio.create_task(self._wait_and_teardown(), name="forwarding-done")

    def _listen(self, port: int) -> socket.socket:
        listener = socket.create_server((self.listen_host, port))
        listener.setblocking(False)
        return listener

    # =========================================================================
    # Accepting and Dispatching
    # =========================================================================

    async def _accept_loop(self, listener: socket.socket) -> None:
        """Accept connections on one listener and push them to the queue."""
        loop = asyncio.get_running_loop()
        host, port = listener.getsockname()[:2]
        address = f"{host}:{port}"

        while True:
            try:
                conn, _ = await self._cancellation.race(
                    loop.sock_accept(listener), discard=_close_accepted
                )
            except ForwardingCancelledError:
                break
            except OSError as e:
                if listener.fileno() == -1:
                    # Listener closed during shutdown
                    break
                logger.warning(f"Failed to accept connection on {address}: {e}")
                try:
                    await self._cancellation.race(
                        asyncio.sleep(config.ACCEPT_RETRY_DELAY_SECONDS)
                    )
                except ForwardingCancelledError:
                    break
                continue

            try:
                await self._cancellation.race(self._queue.put(conn))
            except ForwardingCancelledError:
                _close_socket(conn)
                break

        logger.debug(f"Stopped accepting connections on {address}")

    async def _dispatch_loop(self) -> None:
        """Take connections off the queue and start one worker per connection."""
        while True:
            try:
                conn = await self._cancellation.race(
                    self._queue.get(), discard=_close_socket
                )
            except ForwardingCancelledError:
                break

            task = asyncio.create_task(self._handle_connection(conn))
            self._connection_tasks.add(task)
            task.add_done_callback(self._connection_tasks.discard)

        logger.debug("Stopped dispatching connections")

    async def _handle_connection(self, conn: socket.socket) -> None:
        """Hand one connection to the forward function."""
        if self._cancellation.is_cancelled():
            _close_socket(conn)
            return

        try:
            port = conn.getsockname()[1]
            peer = conn.getpeername()
        except OSError as e:
            logger.warning(f"Dropping connection that went away before dispatch: {e}")
            _close_socket(conn)
            return

        logger.debug(f"Received connection on forwarded port {port} from {peer}")

        try:
            reader, writer = await asyncio.open_connection(sock=conn)
        except OSError as e:
            logger.warning(f"Failed to set up stream for port {port}: {e}")
            _close_socket(conn)
            return

        connection = Connection(reader=reader, writer=writer, local_port=port, peer=peer)
        try:
            await self.forward_fn(connection, port)
        except asyncio.CancelledError:
            connection.close()
            raise
        except Exception as e:
            logger.error(f"Forwarding connection from {peer} on port {port} failed: {e}")
            logger.debug(format_traceback(e))
            connection.close()

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def _wait_and_teardown(self) -> None:
        try:
            await self._cancellation.wait()
            logger.info(f"Stopping port forwarding ({self._cancellation.reason})")

            self._close_listeners()
            await self._drain("acceptor", self._acceptors)
            await self._drain("dispatcher", [self._dispatcher])
            self._close_queue()

            if self._connection_tasks:
                tasks = list(self._connection_tasks)
                for task in tasks:
                    task.cancel()
                await self._drain("connection", tasks)

            logger.info("Port forwarding stopped")
        finally:
            self._close_listeners()

    async def _drain(self, kind: str, tasks: list[asyncio.Task]) -> None:
        """Wait for tasks to finish, at most ``drain_timeout`` seconds."""
        tasks = [task for task in tasks if task is not None]
        if not tasks:
            return

        done, pending = await asyncio.wait(tasks, timeout=self.drain_timeout)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"{kind} task {task.get_name()} failed: {task.exception()}")
        if pending:
            logger.warning(
                f"Timed out waiting for {len(pending)} {kind} task(s) to finish"
            )
            for task in pending:
                task.cancel()

    def _close_listeners(self) -> None:
        for listener in self._listeners:
            if listener.fileno() != -1:
                _close_socket(listener)

    def _close_queue(self) -> None:
        """Close sockets that were accepted but never dispatched."""
        if self._queue is None:
            return
        dropped = 0
        while not self._queue.empty():
            _close_socket(self._queue.get_nowait())
            dropped += 1
        if dropped:
            logger.debug(f"Closed {dropped} undispatched connection(s)")
