"""
Shared fixtures for the hookrelay test suite.
"""

import asyncio
import time
import uuid

import pytest

from hookrelay.channels.base import BaseChannel
from hookrelay.config import Settings
from hookrelay.models.event import Event
from hookrelay.sources.github import compute_signature

WEBHOOK_SECRET = "It's a Secret to Everybody"


class FakeChannel(BaseChannel):
    """In-memory channel that records what it was asked to send.

    ``send_errors`` and ``connect_errors`` are consumed one per call;
    a ``None`` entry in ``send_errors`` means that send succeeds.
    """

    def __init__(self, channel_id="fake"):
        self.channel_id = channel_id
        self.sent = []
        self.send_errors = []
        self.connect_errors = []
        self.connect_delay = 0.0
        self.connects = 0
        self.closes = 0
        self._connected = False

    @property
    def name(self):
        return f"fake:{self.channel_id}"

    @property
    def connected(self):
        return self._connected

    async def connect(self):
        self.connects += 1
        if self.connect_delay:
            await asyncio.sleep(self.connect_delay)
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        self._connected = True

    async def send(self, event):
        if self.send_errors:
            error = self.send_errors.pop(0)
            if error is not None:
                raise error
        self.sent.append(event)

    async def close(self):
        self.closes += 1
        self._connected = False


def make_event(n=1, kind="issues", payload=None):
    return Event(id=f"delivery-{n}", kind=kind, payload=payload if payload is not None else {"n": n})


def github_headers(body, secret=WEBHOOK_SECRET, event="issues", delivery=None):
    """Headers as GitHub sends them, signed over body."""
    return {
        "X-GitHub-Hook-ID": "292430182",
        "X-GitHub-Event": event,
        "X-GitHub-Delivery": delivery or str(uuid.uuid4()),
        "X-Hub-Signature": compute_signature(secret, body, "sha1"),
        "X-Hub-Signature-256": compute_signature(secret, body, "sha256"),
        "User-Agent": "GitHub-Hookshot/044aadd",
        "X-GitHub-Hook-Installation-Target-Type": "repository",
        "X-GitHub-Hook-Installation-Target-ID": "79929171",
        "Content-Type": "application/json",
    }


@pytest.fixture
def settings():
    return Settings(
        bot_credential="test-token",
        destination_channel="1234",
        webhook_secret=WEBHOOK_SECRET,
        queue_capacity=10,
        reconnect_delay=0,
        shutdown_grace=0.2,
        _env_file=None,
    )


@pytest.fixture
def fake_channel():
    return FakeChannel()


@pytest.fixture
def wait_until():
    """Poll a condition from a synchronous test (TestClient runs the loop elsewhere)."""

    def _wait(condition, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(0.01)
        return condition()

    return _wait


@pytest.fixture
def async_wait_until():
    """Poll a condition from inside the event loop."""

    async def _wait(condition, timeout=2.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            await asyncio.sleep(0.01)
        return condition()

    return _wait
