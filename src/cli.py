"""
Command-line interface for thread-archive.

Usage:
    thread-archive serve           # Run the API server
    thread-archive init-db         # Create tables and indexes
    thread-archive sync            # Incremental sync of configured sources
    thread-archive backfill --platform twitter --handle zachxbt
    thread-archive health          # Check dependencies
    thread-archive telegram-login  # Create a Telegram session string
"""

import asyncio
import sys

import click
import structlog

from src.config.settings import ConfigurationError, get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Thread Archive - searchable archive of tweets and Telegram threads."""
    if debug:
        import os
        os.environ["LOG_LEVEL"] = "DEBUG"
        get_settings.cache_clear()

    setup_logging()


def _validate_config() -> None:
    try:
        get_settings().validate_sync_config()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


def _run_sync(sources: list, mode, metrics: bool) -> None:
    from src.services.sync_service import SyncService
    from src.storage.database import Database

    async def run() -> int:
        if metrics:
            get_metrics().start_server()

        async with Database() as db:
            report = await SyncService(db).run(sources, mode)

        click.echo(f"\n{mode.value.capitalize()} sync results:")
        for platform, count in sorted(report.inserted.items()):
            click.echo(f"  {platform}: {count} items")
        for label, message in sorted(report.failures.items()):
            click.echo(click.style(f"  ✗ {label}: {message}", fg="red"))

        return 0 if report.ok else 1

    sys.exit(asyncio.run(run()))


@main.command()
@click.option("--metrics/--no-metrics", default=False, help="Expose metrics while syncing")
def sync(metrics: bool) -> None:
    """Incrementally sync every configured source."""
    from src.config.sources import parse_sources
    from src.ingestion.schemas import SyncMode

    _validate_config()
    sources = parse_sources(get_settings().sources)
    _run_sync(sources, SyncMode.INCREMENTAL, metrics)


@main.command()
@click.option(
    "--platform",
    required=True,
    type=click.Choice(["twitter", "telegram"], case_sensitive=False),
    help="Source platform",
)
@click.option("--handle", required=True, help="Twitter username or Telegram channel")
@click.option("--metrics/--no-metrics", default=False, help="Expose metrics while syncing")
def backfill(platform: str, handle: str, metrics: bool) -> None:
    """Backfill one source's history, oldest archived item backwards."""
    from src.config.sources import parse_source
    from src.ingestion.schemas import SyncMode

    _validate_config()
    try:
        source = parse_source(f"{platform}:{handle}")
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--handle") from e

    _run_sync([source], SyncMode.BACKFILL, metrics)


@main.command("init-db")
def init_db() -> None:
    """Initialize the database schema."""
    from src.storage.database import Database
    from src.storage.repository import ArchiveRepository

    async def run():
        async with Database() as db:
            await ArchiveRepository(db).create_tables()
        click.echo("Database initialized successfully")

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""

    async def check():
        import asyncpg
        import redis.asyncio as redis

        from src.storage.database import Database

        settings = get_settings()
        results: dict[str, bool] = {}

        try:
            async with Database() as db:
                results["postgres"] = await db.health_check()
        except (OSError, asyncpg.PostgresError) as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        client = redis.from_url(str(settings.redis_url))
        try:
            results["redis"] = bool(await client.ping())
        except (redis.RedisError, OSError) as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))
        finally:
            await client.aclose()

        results["twitter_configured"] = settings.twitter_configured
        results["telegram_configured"] = settings.telegram_configured
        results["cron_secret_configured"] = bool(settings.cron_secret)

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))

        click.echo("-" * 40)

        # Redis only backs the response cache
        if results["postgres"]:
            click.echo(click.style("Database healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Database unreachable!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--host", default=None, help="API server host")
@click.option("--port", default=None, type=int, help="API server port")
@click.option("--reload", is_flag=True, help="Enable auto-reload (dev only)")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
def serve(host: str | None, port: int | None, reload: bool, metrics_port: int | None) -> None:
    """Start the archive API server."""
    import uvicorn

    settings = get_settings()
    host = host or settings.api_host
    port = port or settings.api_port
    metrics_port = metrics_port or settings.metrics_port

    _validate_config()

    get_metrics().start_server(port=metrics_port)

    click.echo(f"Starting API server on {host}:{port}")
    click.echo(f"Metrics available on http://localhost:{metrics_port}/metrics")
    click.echo(f"API docs available on http://localhost:{port}/docs")

    uvicorn.run(
        "src.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


@main.command("telegram-login")
@click.option("--api-id", type=int, default=None, help="Telegram API id (default TELEGRAM_API_ID)")
@click.option("--api-hash", default=None, help="Telegram API hash (default TELEGRAM_API_HASH)")
@click.option("--phone", default=None, help="Phone number in international format")
def telegram_login(api_id: int | None, api_hash: str | None, phone: str | None) -> None:
    """Log in interactively and print a TELEGRAM_SESSION string."""
    from telethon import TelegramClient
    from telethon.sessions import StringSession

    settings = get_settings()
    api_id = api_id or settings.telegram_api_id
    api_hash = api_hash or settings.telegram_api_hash
    if not api_id or not api_hash:
        raise click.UsageError(
            "Telegram API id and hash are required (--api-id/--api-hash or "
            "TELEGRAM_API_ID/TELEGRAM_API_HASH)"
        )

    async def run() -> str:
        client = TelegramClient(StringSession(), api_id, api_hash)
        await client.start(
            phone=lambda: phone or click.prompt("Phone number"),
            code_callback=lambda: click.prompt("Login code"),
            password=lambda: click.prompt("2FA password", hide_input=True),
        )
        try:
            me = await client.get_me()
            click.echo(f"Logged in as {me.username or me.id}")
            return client.session.save()
        finally:
            await client.disconnect()

    session = asyncio.run(run())
    click.echo("\nAdd this to your environment (keep it secret):")
    click.echo(f"TELEGRAM_SESSION={session}")


if __name__ == "__main__":
    main()
