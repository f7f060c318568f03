"""Webhook ingestion: validate a request, then hand it to the relay.

The ingestor never talks to the chat backend. Its only side effect is a
non-blocking enqueue; once it answers Accepted, delivery problems are the
notifier's concern and never reach the HTTP caller.
"""

import logging
from collections.abc import Mapping
from typing import Protocol

from hookrelay.errors import Malformed, RelayClosed, RelayFull, Unauthorized
from hookrelay.models.event import Event
from hookrelay.models.status import AcceptanceStatus
from hookrelay.sources.base import BaseSource

logger = logging.getLogger(__name__)


class EventSink(Protocol):
    """Anything events can be enqueued on: RelayQueue or Broadcaster."""

    def enqueue(self, event: Event) -> None: ...


class WebhookIngestor:
    """Admits validated webhook requests onto the relay."""

    def __init__(self, source: BaseSource, sink: EventSink):
        self._source = source
        self._sink = sink

    def handle(
        self,
        headers: Mapping[str, str],
        body: bytes,
        content_type: str = "",
    ) -> tuple[AcceptanceStatus, str]:
        """Validate and enqueue one request.

        Returns the acceptance status and a short reason suitable for the
        response body. The request payload is never part of the reason.
        """
        try:
            event = self._source.parse(headers, body, content_type)
        except Malformed as e:
            logger.warning(f"Rejected malformed {self._source.name} webhook: {e}")
            return AcceptanceStatus.MALFORMED, str(e)
        except Unauthorized as e:
            logger.warning(f"Rejected unauthorized {self._source.name} webhook: {e}")
            return AcceptanceStatus.UNAUTHORIZED, "signature verification failed"

        try:
            self._sink.enqueue(event)
        except RelayFull as e:
            logger.warning(f"Relay full, dropped {event.describe()}: {e}")
            return AcceptanceStatus.OVERLOADED, "relay is at capacity, retry later"
        except RelayClosed:
            logger.warning(f"Relay closed, dropped {event.describe()}")
            return AcceptanceStatus.UNAVAILABLE, "relay is shutting down"

        logger.info(f"Accepted {event.describe()}")
        return AcceptanceStatus.ACCEPTED, "event queued for delivery"
