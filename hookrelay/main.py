"""hookrelay - FastAPI application relaying GitHub webhooks to Discord."""

import asyncio
import logging
import sys
from collections.abc import Callable
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from hookrelay.channels.base import BaseChannel
from hookrelay.channels.discord import DiscordChannel
from hookrelay.config import Settings, get_settings
from hookrelay.errors import StartupError
from hookrelay.ingestor import WebhookIngestor
from hookrelay.models.status import AcceptanceStatus, ServiceStatus
from hookrelay.notifier import Notifier
from hookrelay.relay import Broadcaster, RelayQueue
from hookrelay.sources.github import GitHubSource

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

ChannelFactory = Callable[[str], BaseChannel]


def discord_channel_factory(settings: Settings) -> ChannelFactory:
    """Build Discord channels for destination ids using the bot credential."""

    def factory(channel_id: str) -> BaseChannel:
        return DiscordChannel(
            token=settings.bot_credential,
            channel_id=channel_id,
            guild_id=settings.guild_id,
            channel_name_hint=settings.channel_name_hint,
            api_base=settings.discord_api_base,
            timeout=settings.request_timeout,
        )

    return factory


def create_app(
    settings: Settings | None = None,
    channel_factory: ChannelFactory | None = None,
    on_fatal: Callable[[], None] | None = None,
) -> FastAPI:
    """Build the application.

    Settings default to the environment. ``on_fatal`` is called when a
    notifier gives up on its session; the process is expected to exit.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler for startup/shutdown."""
        config = settings or get_settings()

        # Configure logging level
        logging.getLogger().setLevel(config.log_level.upper())

        relay: RelayQueue | Broadcaster
        if config.delivery_mode == "broadcast":
            relay = Broadcaster(config.queue_capacity)
        else:
            relay = RelayQueue(config.queue_capacity)

        source = GitHubSource(
            secret=config.webhook_secret,
            user_agent_prefix=config.user_agent_prefix,
            strict_headers=config.strict_headers,
        )
        factory = channel_factory or discord_channel_factory(config)
        notifiers = [
            Notifier(
                factory(destination),
                relay,
                startup_timeout=config.startup_timeout,
                reconnect_attempts=config.reconnect_attempts,
                reconnect_delay=config.reconnect_delay,
                reconnect_backoff=config.reconnect_backoff,
                reconnect_max_delay=config.reconnect_max_delay,
            )
            for destination in config.destinations
        ]

        app.state.relay = relay
        app.state.ingestor = WebhookIngestor(source, relay)
        app.state.notifiers = notifiers

        try:
            for notifier in notifiers:
                await notifier.start()
        except StartupError as e:
            logger.critical(f"Startup failed: {e}")
            relay.close()
            for notifier in notifiers:
                await notifier.channel.close()
            raise

        def notifier_exited(task: asyncio.Task) -> None:
            if task.cancelled() or task.exception() is None:
                return
            logger.critical(f"{task.get_name()} stopped: {task.exception()}")
            relay.close()
            if on_fatal is not None:
                on_fatal()

        tasks = []
        for notifier in notifiers:
            task = asyncio.create_task(notifier.run(), name=f"notifier {notifier.channel.name}")
            task.add_done_callback(notifier_exited)
            tasks.append(task)

        logger.info(
            f"hookrelay started: mode={config.delivery_mode}, capacity={config.queue_capacity}, "
            f"{len(notifiers)} notifier(s)"
        )

        yield

        # Cleanup on shutdown
        relay.close()
        _, pending = await asyncio.wait(tasks, timeout=config.shutdown_grace)
        for task in pending:
            logger.warning(f"Abandoning in-flight delivery of {task.get_name()}")
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("hookrelay stopped")

    app = FastAPI(
        title="hookrelay",
        description="Relays verified GitHub webhooks to a Discord channel",
        version="0.1.0",
        lifespan=lifespan,
    )

    @app.get("/")
    async def root(request: Request) -> ServiceStatus:
        """Status of the Discord session(s) and the webhook intake."""
        relay = getattr(request.app.state, "relay", None)
        notifiers = getattr(request.app.state, "notifiers", [])
        return ServiceStatus(
            discord=bool(notifiers) and all(n.connected for n in notifiers),
            github=relay is not None and not relay.closed,
        )

    @app.post("/gh")
    async def github_webhook(request: Request) -> JSONResponse:
        """Receive a GitHub webhook delivery."""
        body = await request.body()
        acceptance, message = request.app.state.ingestor.handle(
            request.headers, body, request.headers.get("content-type", "")
        )

        headers = {"Retry-After": "1"} if acceptance is AcceptanceStatus.OVERLOADED else None
        return JSONResponse(
            status_code=acceptance.http_status,
            content={"status": acceptance.value, "message": message},
            headers=headers,
        )

    return app


def run() -> None:
    """Run the application using uvicorn."""
    settings = get_settings()
    fatal = False

    def stop_server() -> None:
        nonlocal fatal
        fatal = True
        server.should_exit = True

    config = uvicorn.Config(
        create_app(settings, on_fatal=stop_server),
        host=settings.host,
        port=settings.listen_port,
        log_level=settings.log_level.lower(),
        lifespan="on",
    )
    server = uvicorn.Server(config)
    server.run()

    if fatal or not server.started:
        sys.exit(1)


if __name__ == "__main__":
    run()
