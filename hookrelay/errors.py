"""Exceptions raised along the relay pipeline."""


class RelayError(Exception):
    """Base class for hookrelay errors."""


class WebhookRejected(RelayError):
    """A webhook request failed validation and never reaches the relay."""


class Malformed(WebhookRejected):
    """Missing headers, unexpected sender or an unparsable body."""


class Unauthorized(WebhookRejected):
    """Signature verification failed."""


class RelayFull(RelayError):
    """The relay is at capacity; the caller should retry later."""


class RelayClosed(RelayError):
    """The relay was closed for shutdown."""


class DeliveryFailed(RelayError):
    """A single message could not be delivered over a healthy session."""


class SessionLost(RelayError):
    """The chat backend session is gone and must be re-established."""


class SessionRefused(SessionLost):
    """The backend rejected us outright; retrying will not help."""


class StartupError(RelayError):
    """The chat session could not be established at startup."""
