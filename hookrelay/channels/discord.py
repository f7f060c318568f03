"""Discord bot channel implementation."""

import json
import logging
from typing import Any

import httpx

from hookrelay.channels.base import BaseChannel
from hookrelay.errors import DeliveryFailed, SessionLost, SessionRefused
from hookrelay.models.event import Event

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000

# Discord channel type for guild text channels.
GUILD_TEXT = 0

_FENCE_OPEN = "```json\n"
_FENCE_CLOSE = "\n```"
_TRUNCATED = "\n..."

# Longest kind or delivery id shown in the header line.
MAX_HEADER_FIELD = 100


def _clip(value: str, limit: int = MAX_HEADER_FIELD) -> str:
    return value if len(value) <= limit else value[: limit - 3] + "..."


def format_event(event: Event) -> str:
    """Render an event as a header line plus a fenced JSON block.

    Output is deterministic for identical events and never exceeds
    Discord's message length limit.
    """
    header = f"**{_clip(event.kind)}** `{_clip(event.id)}`\n"
    body = json.dumps(event.payload, indent=2, ensure_ascii=False, default=str)

    room = MAX_MESSAGE_LENGTH - len(header) - len(_FENCE_OPEN) - len(_FENCE_CLOSE)
    if len(body) > room:
        body = body[: room - len(_TRUNCATED)] + _TRUNCATED

    return f"{header}{_FENCE_OPEN}{body}{_FENCE_CLOSE}"


class DiscordChannel(BaseChannel):
    """Posts events to a Discord text channel through the bot REST API."""

    def __init__(
        self,
        token: str,
        channel_id: str = "",
        guild_id: str = "",
        channel_name_hint: str = "github",
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not channel_id and not guild_id:
            raise ValueError("either channel_id or guild_id is required")
        self._token = token
        self._channel_id = channel_id
        self._guild_id = guild_id
        self._channel_name_hint = channel_name_hint
        self._api_base = api_base.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._bot_name = ""

    @property
    def name(self) -> str:
        return f"discord:{self._channel_id or self._guild_id}"

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def channel_id(self) -> str:
        return self._channel_id

    @property
    def bot_name(self) -> str:
        return self._bot_name

    async def connect(self) -> None:
        client = httpx.AsyncClient(
            base_url=self._api_base,
            headers={
                "Authorization": f"Bot {self._token}",
                "User-Agent": "DiscordBot (hookrelay, 0.1.0)",
            },
            timeout=self._timeout,
            transport=self._transport,
        )
        try:
            user = await self._get(client, "/users/@me")
            if not self._channel_id:
                self._channel_id = await self._resolve_channel(client)
        except BaseException:
            await client.aclose()
            raise

        self._bot_name = user.get("username", "")
        self._client = client
        logger.info(f"{self._bot_name} is connected! Delivering to channel {self._channel_id}")

    async def _get(self, client: httpx.AsyncClient, path: str) -> Any:
        try:
            response = await client.get(path)
        except httpx.TransportError as e:
            raise SessionLost(f"cannot reach Discord: {e}") from e
        if response.status_code in (401, 403, 404):
            raise SessionRefused(f"GET {path} failed with HTTP {response.status_code}")
        if response.is_error:
            raise SessionLost(f"GET {path} failed with HTTP {response.status_code}")
        return response.json()

    async def _resolve_channel(self, client: httpx.AsyncClient) -> str:
        """Pick the first guild text channel whose name contains the hint."""
        channels = await self._get(client, f"/guilds/{self._guild_id}/channels")
        for channel in channels:
            if channel.get("type") == GUILD_TEXT and self._channel_name_hint in channel.get("name", ""):
                logger.info(f"Resolved channel #{channel['name']} ({channel['id']})")
                return str(channel["id"])
        raise SessionRefused(
            f"no channel containing {self._channel_name_hint!r} in guild {self._guild_id}"
        )

    async def send(self, event: Event) -> None:
        if self._client is None:
            raise SessionLost("not connected")

        message = {"content": format_event(event)}
        try:
            response = await self._client.post(
                f"/channels/{self._channel_id}/messages", json=message
            )
        except httpx.TransportError as e:
            raise SessionLost(f"connection to Discord lost: {e}") from e

        if response.status_code == 401:
            raise SessionRefused("Discord rejected the bot credential")
        if response.is_error:
            logger.error(f"Discord API error {response.status_code}: {response.text}")
            raise DeliveryFailed(f"HTTP {response.status_code}")

        logger.debug(f"Sent {event.describe()} to {self.name}")

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
