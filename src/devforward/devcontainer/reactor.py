"""
Container lifecycle reactor.

Consumes the devcontainer's lifecycle events and decides whether forwarding
should go on. A dying container gets a grace period to restart; when it
does not come back in time (or the event stream ends) the shared
cancellation signal is triggered, which shuts the forwarding engine down.

The reactor owns the container state. Everything else reads it through
``snapshot()``, which returns an immutable copy.

Phases:
    UNKNOWN --start--> ACTIVE --die--> GRACE_PENDING --restart--> ACTIVE
                                             |
                                  deadline passed / stream ended
                                             v
                                        TERMINATED
"""

import asyncio
import time
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass

from devforward.config import config
from devforward.docker.events import LifecycleEvent
from devforward.forwarding.cancellation import CancellationSignal
from devforward.models.enums import ContainerStatus, LifecycleAction, ReactorPhase
from devforward.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ContainerSnapshot:
    """Point-in-time copy of the container state."""

    identifier: str
    remote_user: str
    status: ContainerStatus

    @property
    def short_id(self) -> str:
        return self.identifier[:12]


@dataclass
class ContainerState:
    """Mutable container state, written only by the reactor."""

    identifier: str = ""
    remote_user: str = ""
    status: ContainerStatus = ContainerStatus.UNKNOWN

    def snapshot(self) -> ContainerSnapshot:
        return ContainerSnapshot(
            identifier=self.identifier,
            remote_user=self.remote_user,
            status=self.status,
        )


async def _next_event(iterator: AsyncIterator[LifecycleEvent]) -> LifecycleEvent:
    return await iterator.__anext__()


class ContainerLifecycleReactor:
    """
    Restart-tolerant state machine driven by container events.

    The grace timer is a plain deadline on a monotonic clock that is checked
    every time the reactor wakes up, so arming and disarming can never race a
    timer callback.

    Attributes:
        grace_period: Seconds a died container has to restart.
        remote_user_override: Remote user from devcontainer.json; when set it
            wins over the user found in the container metadata.
    """

    def __init__(
        self,
        grace_period: float | None = None,
        remote_user_override: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        self.grace_period = (
            grace_period if grace_period is not None else config.GRACE_PERIOD_SECONDS
        )
        self.remote_user_override = remote_user_override
        self._clock = clock
        self._state = ContainerState(remote_user=remote_user_override)
        self._phase = ReactorPhase.UNKNOWN
        self._deadline: float | None = None

    @property
    def phase(self) -> ReactorPhase:
        return self._phase

    @property
    def deadline(self) -> float | None:
        """Clock value at which the grace period expires, None when disarmed."""
        return self._deadline

    def snapshot(self) -> ContainerSnapshot:
        return self._state.snapshot()

    def seed(self, identifier: str, remote_user: str = "") -> None:
        """Record a container that was already running before events were read."""
        if self._phase != ReactorPhase.UNKNOWN:
            return
        self._state.identifier = identifier
        self._state.remote_user = self.remote_user_override or remote_user
        self._state.status = ContainerStatus.RUNNING
        self._phase = ReactorPhase.ACTIVE
        logger.info(f"Container {identifier[:12]} is running, allow forwarding")

    # =========================================================================
    # Event Loop
    # =========================================================================

    async def run(
        self,
        events: AsyncIterator[LifecycleEvent],
        cancellation: CancellationSignal,
    ) -> None:
        """
        Process events until the reactor terminates or forwarding is cancelled.

        Each step waits for whichever comes first: the next event, the grace
        deadline, or the cancellation signal.
        """
        iterator = aiter(events)
        next_event: asyncio.Task | None = None
        cancelled = asyncio.ensure_future(cancellation.wait())

        try:
            while True:
                if self._deadline_passed():
                    self._terminate(
                        cancellation, "container failed to (re)start, bailing out"
                    )
                    return

                if next_event is None:
                    next_event = asyncio.create_task(_next_event(iterator))

                done, _ = await asyncio.wait(
                    {next_event, cancelled},
                    timeout=self._time_left(),
                    return_when=asyncio.FIRST_COMPLETED,
                )

                if cancelled in done:
                    logger.debug(f"Event handling cancelled ({cancellation.reason})")
                    self._stop()
                    return

                if next_event not in done:
                    # Woke up for the deadline
                    continue

                task, next_event = next_event, None
                try:
                    event = task.result()
                except StopAsyncIteration:
                    self._terminate(cancellation, "container event stream ended")
                    return
                except Exception as e:
                    logger.error(f"Reading container events failed: {e}")
                    self._terminate(cancellation, f"container event stream failed: {e}")
                    return

                # An expired grace period is final even if a restart is already queued
                if self._deadline_passed():
                    self._terminate(
                        cancellation, "container failed to (re)start, bailing out"
                    )
                    return

                self.handle_event(event)
        finally:
            cancelled.cancel()
            if next_event is not None:
                next_event.cancel()

    def handle_event(self, event: LifecycleEvent) -> None:
        """Apply a single event to the state machine."""
        if self._phase == ReactorPhase.TERMINATED:
            return

        action = event.lifecycle_action
        if action is None:
            logger.trace(f"Ignoring container event {event.action!r}")
            return

        if (
            action != LifecycleAction.START
            and self._state.identifier
            and event.identifier
            and event.identifier != self._state.identifier
        ):
            logger.debug(
                f"Ignoring {action.value} of container {event.identifier[:12]}, "
                f"forwarding to {self._state.identifier[:12]}"
            )
            return

        match action:
            case LifecycleAction.START:
                self._on_start(event)
            case LifecycleAction.DIE:
                self._on_die(event)
            case LifecycleAction.RESTART:
                self._on_restart(event)

    def _on_start(self, event: LifecycleEvent) -> None:
        if event.identifier:
            self._state.identifier = event.identifier
        self._state.remote_user = self.remote_user_override or event.remote_user

        if self._phase == ReactorPhase.GRACE_PENDING:
            # Only a restart ends the grace period
            logger.info(
                f"Container {event.identifier[:12]} started, still waiting for restart"
            )
            return

        logger.info(f"Container {event.identifier[:12]} started, allow forwarding")
        self._state.status = ContainerStatus.RUNNING
        self._disarm()
        self._phase = ReactorPhase.ACTIVE

    def _on_die(self, event: LifecycleEvent) -> None:
        if self._phase == ReactorPhase.UNKNOWN:
            logger.debug(f"Ignoring die of {event.identifier[:12]} before any start")
            return
        logger.info(
            f"Container {event.identifier[:12]} died, stop forwarding unless it "
            f"restarts within {self.grace_period}s"
        )
        self._state.status = ContainerStatus.DYING
        self._arm()
        self._phase = ReactorPhase.GRACE_PENDING

    def _on_restart(self, event: LifecycleEvent) -> None:
        if self._phase != ReactorPhase.GRACE_PENDING:
            logger.debug(f"Container {event.identifier[:12]} restarted")
            return
        # TODO: confirm the container accepts connections before resuming
        logger.info(f"Container {event.identifier[:12]} restarted, allow forwarding")
        self._disarm()
        self._state.status = ContainerStatus.RUNNING
        self._phase = ReactorPhase.ACTIVE

    # =========================================================================
    # Grace Timer
    # =========================================================================

    def _arm(self) -> None:
        self._deadline = self._clock() + self.grace_period

    def _disarm(self) -> None:
        self._deadline = None

    def _deadline_passed(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def _time_left(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def _stop(self) -> None:
        self._disarm()
        self._phase = ReactorPhase.TERMINATED
        self._state.status = ContainerStatus.STOPPED

    def _terminate(self, cancellation: CancellationSignal, reason: str) -> None:
        if self._phase == ReactorPhase.TERMINATED:
            return
        logger.warning(f"{reason}, cancel forwarding and event handling")
        self._stop()
        cancellation.cancel(reason)
