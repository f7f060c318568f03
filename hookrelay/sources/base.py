"""Base class for webhook sources."""

from abc import ABC, abstractmethod
from collections.abc import Mapping

from hookrelay.models.event import Event


class BaseSource(ABC):
    """Abstract base class for webhook sources."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name identifier."""
        ...

    @abstractmethod
    def parse(self, headers: Mapping[str, str], body: bytes, content_type: str = "") -> Event:
        """Validate a raw webhook request and build an Event.

        Raises Malformed or Unauthorized on the first violation found.
        """
        ...
