"""GitHub webhook validation and parsing."""

import hashlib
import hmac
import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any
from urllib.parse import parse_qs

from hookrelay.errors import Malformed, Unauthorized
from hookrelay.models.event import Event
from hookrelay.sources.base import BaseSource

logger = logging.getLogger(__name__)


class GitHubHeader(str, Enum):
    """Headers GitHub sends with every webhook delivery."""

    HOOK_ID = "X-GitHub-Hook-ID"
    EVENT = "X-GitHub-Event"
    DELIVERY = "X-GitHub-Delivery"
    SIGNATURE = "X-Hub-Signature"
    SIGNATURE_256 = "X-Hub-Signature-256"
    USER_AGENT = "User-Agent"
    TARGET_TYPE = "X-GitHub-Hook-Installation-Target-Type"
    TARGET_ID = "X-GitHub-Hook-Installation-Target-ID"

    @property
    def key(self) -> str:
        return self.value.lower()


REQUIRED_HEADERS = tuple(GitHubHeader)

# Needed to build and verify an Event; the rest are informational.
MANDATORY_HEADERS = (GitHubHeader.EVENT, GitHubHeader.DELIVERY, GitHubHeader.USER_AGENT)

INFORMATIONAL_HEADERS = (GitHubHeader.HOOK_ID, GitHubHeader.TARGET_TYPE, GitHubHeader.TARGET_ID)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def compute_signature(secret: str, body: bytes, algorithm: str = "sha256") -> str:
    """Return the signature header value GitHub would send for body."""
    digest = hmac.new(secret.encode("utf-8"), body, getattr(hashlib, algorithm)).hexdigest()
    return f"{algorithm}={digest}"


def verify_signature(secret: str, body: bytes, header_value: str, algorithm: str = "sha256") -> bool:
    """Check an ``<algorithm>=<hex>`` signature over body.

    The header must name the expected algorithm; a sha1 value in the
    sha256 header is rejected.
    """
    prefix, sep, received = header_value.strip().partition("=")
    if not sep or prefix != algorithm:
        return False
    expected = compute_signature(secret, body, algorithm).partition("=")[2]
    return hmac.compare_digest(expected.encode(), received.encode())


class GitHubSource(BaseSource):
    """Validates GitHub webhook requests and turns them into Events."""

    def __init__(
        self,
        secret: str,
        user_agent_prefix: str = "GitHub-Hookshot/",
        strict_headers: bool = True,
    ):
        if not secret:
            raise ValueError("a webhook secret is required")
        self._secret = secret
        self._user_agent_prefix = user_agent_prefix
        self._strict_headers = strict_headers

    @property
    def name(self) -> str:
        return "github"

    def parse(self, headers: Mapping[str, str], body: bytes, content_type: str = "") -> Event:
        if not headers:
            raise Malformed("request has no headers")

        normalized = {k.lower(): v for k, v in headers.items()}

        self._check_headers(normalized)
        self._check_user_agent(normalized[GitHubHeader.USER_AGENT.key])
        self._check_signature(normalized, body)

        payload = self._decode_body(body, content_type)

        event = Event(
            id=normalized[GitHubHeader.DELIVERY.key],
            kind=normalized[GitHubHeader.EVENT.key],
            payload=payload,
            meta={
                h.key: normalized[h.key] for h in INFORMATIONAL_HEADERS if h.key in normalized
            },
        )
        logger.debug(f"Validated {event.describe()}")
        return event

    def _check_headers(self, headers: dict[str, str]) -> None:
        required = REQUIRED_HEADERS if self._strict_headers else MANDATORY_HEADERS
        for header in required:
            if header.key not in headers:
                raise Malformed(f"missing header {header.value}")

        if (
            GitHubHeader.SIGNATURE_256.key not in headers
            and GitHubHeader.SIGNATURE.key not in headers
        ):
            raise Malformed(f"missing header {GitHubHeader.SIGNATURE_256.value}")

    def _check_user_agent(self, user_agent: str) -> None:
        if self._user_agent_prefix not in user_agent:
            raise Malformed(f"unexpected user agent {user_agent!r}")

    def _check_signature(self, headers: dict[str, str], body: bytes) -> None:
        # Prefer the sha256 signature, fall back to the legacy sha1 one.
        signature = headers.get(GitHubHeader.SIGNATURE_256.key)
        algorithm = "sha256"
        if signature is None:
            signature = headers[GitHubHeader.SIGNATURE.key]
            algorithm = "sha1"

        if not verify_signature(self._secret, body, signature, algorithm):
            delivery = headers.get(GitHubHeader.DELIVERY.key, "")
            raise Unauthorized(f"signature mismatch for delivery {delivery}")

    def _decode_body(self, body: bytes, content_type: str) -> Any:
        try:
            text = body.decode("utf-8")
            if content_type.split(";")[0].strip().lower() == FORM_CONTENT_TYPE:
                fields = parse_qs(text, strict_parsing=True)
                if "payload" not in fields:
                    raise Malformed("form body has no payload field")
                text = fields["payload"][0]
            return json.loads(text)
        except (UnicodeDecodeError, ValueError, RecursionError) as e:
            raise Malformed(f"invalid body: {e}") from e
