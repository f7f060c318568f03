"""Chat notifier: drains the relay and delivers events to one channel.

Delivery is at-most-once. A failed send is logged and the event is
dropped; the loop moves on to the next event. Losing the session drops
the in-flight event as well, then reconnects with exponential backoff.
Running out of reconnect attempts ends run() with SessionLost.
"""

import asyncio
import logging
from enum import Enum
from typing import Protocol

from hookrelay.channels.base import BaseChannel
from hookrelay.errors import DeliveryFailed, RelayClosed, SessionLost, SessionRefused, StartupError
from hookrelay.models.event import Event
from hookrelay.relay import RelayQueue

logger = logging.getLogger(__name__)


class NotifierState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DELIVERING = "delivering"


class EventSource(Protocol):
    """Where a notifier gets its queue from: RelayQueue or Broadcaster."""

    def subscribe(self) -> RelayQueue: ...

    def unsubscribe(self, subscription: RelayQueue) -> None: ...


class Notifier:
    """Owns one chat session and the delivery loop feeding it."""

    def __init__(
        self,
        channel: BaseChannel,
        relay: EventSource,
        startup_timeout: float = 30.0,
        reconnect_attempts: int = 5,
        reconnect_delay: float = 1.0,
        reconnect_backoff: float = 2.0,
        reconnect_max_delay: float = 30.0,
    ):
        self._channel = channel
        self._relay = relay
        self._queue: RelayQueue | None = None
        self._startup_timeout = startup_timeout
        self._reconnect_attempts = reconnect_attempts
        self._reconnect_delay = reconnect_delay
        self._reconnect_backoff = reconnect_backoff
        self._reconnect_max_delay = reconnect_max_delay
        self._state = NotifierState.DISCONNECTED
        self.delivered = 0
        self.failed = 0

    @property
    def state(self) -> NotifierState:
        return self._state

    @property
    def connected(self) -> bool:
        return (
            self._state in (NotifierState.CONNECTED, NotifierState.DELIVERING)
            and self._channel.connected
        )

    @property
    def channel(self) -> BaseChannel:
        return self._channel

    async def start(self) -> None:
        """Connect and subscribe; StartupError if the session never comes up.

        Transient failures are retried with backoff until startup_timeout
        has elapsed in total. A refused session fails at once.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._startup_timeout
        delay = self._reconnect_delay
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._connect(timeout=max(deadline - loop.time(), 0))
                break
            except SessionRefused as e:
                raise StartupError(f"{self._channel.name} refused the session: {e}") from e
            except SessionLost as e:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    raise StartupError(
                        f"could not connect to {self._channel.name} within "
                        f"{self._startup_timeout}s ({attempt} attempt(s)): {e}"
                    ) from e
                logger.warning(f"Connect attempt {attempt} to {self._channel.name} failed: {e}")
                await asyncio.sleep(min(delay, remaining))
                delay = min(delay * self._reconnect_backoff, self._reconnect_max_delay)

        self._queue = self._relay.subscribe()

    async def run(self) -> None:
        """Deliver events until the relay closes."""
        if self._queue is None:
            raise RuntimeError("start() must complete before run()")

        logger.info(f"Notifier for {self._channel.name} running")
        try:
            while True:
                try:
                    event = await self._queue.dequeue()
                except RelayClosed:
                    logger.info(f"Relay closed, notifier for {self._channel.name} stopping")
                    break
                await self._deliver(event)
        finally:
            self._relay.unsubscribe(self._queue)
            await self._channel.close()
            self._state = NotifierState.DISCONNECTED

    async def _deliver(self, event: Event) -> None:
        self._state = NotifierState.DELIVERING
        try:
            await self._channel.deliver(event)
        except DeliveryFailed as e:
            self.failed += 1
            self._state = NotifierState.CONNECTED
            logger.error(f"Delivery failed for {event.describe()}: {e}")
            return
        except SessionLost as e:
            self.failed += 1
            self._state = NotifierState.DISCONNECTED
            logger.error(f"Session lost while delivering {event.describe()}, event dropped: {e}")
            await self._reconnect()
            return

        self.delivered += 1
        self._state = NotifierState.CONNECTED
        logger.info(f"Delivered {event.describe()} to {self._channel.name}")

    async def _connect(self, timeout: float | None = None) -> None:
        if timeout is None:
            timeout = self._startup_timeout
        self._state = NotifierState.CONNECTING
        try:
            await asyncio.wait_for(self._channel.connect(), timeout=timeout)
        except asyncio.TimeoutError as e:
            self._state = NotifierState.DISCONNECTED
            raise SessionLost(f"not ready after {timeout:.1f}s") from e
        except SessionLost:
            self._state = NotifierState.DISCONNECTED
            raise
        self._state = NotifierState.CONNECTED

    async def _reconnect(self) -> None:
        delay = self._reconnect_delay
        for attempt in range(1, self._reconnect_attempts + 1):
            await self._channel.close()
            try:
                await self._connect()
            except SessionLost as e:
                logger.warning(
                    f"Reconnect attempt {attempt}/{self._reconnect_attempts} "
                    f"to {self._channel.name} failed: {e}"
                )
            else:
                logger.info(f"Reconnected to {self._channel.name} after {attempt} attempt(s)")
                return

            if attempt < self._reconnect_attempts:
                await asyncio.sleep(delay)
                delay = min(delay * self._reconnect_backoff, self._reconnect_max_delay)

        raise SessionLost(
            f"gave up on {self._channel.name} after {self._reconnect_attempts} reconnect attempts"
        )
