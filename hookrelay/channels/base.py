"""Base class for chat channels."""

import logging
from abc import ABC, abstractmethod

from hookrelay.errors import DeliveryFailed, SessionLost
from hookrelay.models.event import Event

logger = logging.getLogger(__name__)


class BaseChannel(ABC):
    """Abstract base class for a chat destination reached over a session.

    A channel owns its session. connect() must succeed before send() is
    used; close() tears the session down and connect() may be called again.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Channel name for logging."""
        ...

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Whether the session is currently established."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session and wait until it is ready.

        Raises SessionLost if the backend cannot be reached or refuses us.
        """
        ...

    @abstractmethod
    async def send(self, event: Event) -> None:
        """Deliver one event.

        Raises DeliveryFailed for a rejected message, SessionLost when the
        session itself is unusable.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Tear the session down. Safe to call when not connected."""
        ...

    async def deliver(self, event: Event) -> None:
        """Send with unexpected errors folded into DeliveryFailed."""
        try:
            await self.send(event)
        except (DeliveryFailed, SessionLost):
            raise
        except Exception as e:
            logger.exception(f"Unexpected error sending to channel {self.name}: {e}")
            raise DeliveryFailed(str(e)) from e
