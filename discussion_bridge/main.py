"""Command-line entry point: runs the Discord client and the webhook server together."""

import argparse
import asyncio
import logging
import sys

import uvicorn

from .config import Config, load_config
from .discord_client import BridgeClient, DiscordGateway
from .services import ArchiveService, DatabaseService, GitHubService, MappingService
from .sync import ForwardSyncHandler, ReverseSyncHandler, SyncRegistry
from .webhook_server import create_webhook_app

NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy", "discord", "uvicorn.access")


def setup_logging(verbose: bool = False) -> None:
    """Log to stdout; third-party libraries only at WARNING and above."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


async def list_categories(config: Config) -> int:
    """Print the repository's discussion categories."""
    categories = await GitHubService(config.github).list_discussion_categories()
    if not categories:
        print(f"No discussion categories found in {config.github.owner}/{config.github.repo}")
        return 1

    print(f"Discussion categories in {config.github.owner}/{config.github.repo}:")
    for category in categories:
        marker = "*" if category["id"] == config.github.discussion_category_id else " "
        print(f" {marker} {category['id']}  {category.get('emoji') or ''} {category['name']}")
    return 0


async def _stop(tasks, logger) -> None:
    for task in tasks:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Task %s cancelled", task.get_name())


async def run_bridge(config: Config, verbose: bool, logger: logging.Logger) -> int:
    """Wire the sync core and serve until the Discord client or the webhook server stops."""
    db_service = DatabaseService(config.storage.database_path)
    await db_service.initialize()
    logger.info("Database initialized at %s", config.storage.database_path)

    try:
        github_service = GitHubService(config.github)
        await github_service.verify_connection()

        mappings = MappingService(db_service)
        archive = ArchiveService(db_service)
        registry = SyncRegistry.from_config(config.sync)
        forum_channel_id = str(config.discord.forum_channel_id)

        client = BridgeClient(config.discord.forum_channel_id)
        gateway = DiscordGateway(client)
        client.attach(
            ForwardSyncHandler(
                chat=gateway,
                github=github_service,
                mappings=mappings,
                registry=registry,
                forum_channel_id=forum_channel_id,
                grace_period=config.sync.grace_period_seconds,
                archive=archive,
            )
        )
        reverse_handler = ReverseSyncHandler(
            chat=gateway,
            mappings=mappings,
            registry=registry,
            forum_channel_id=forum_channel_id,
            similar_thread_window=config.sync.similar_thread_window_seconds,
        )

        server = uvicorn.Server(
            uvicorn.Config(
                create_webhook_app(config, reverse_handler, mappings, archive),
                host=config.server.host,
                port=config.server.port,
                log_level="info" if verbose else "warning",
            )
        )

        logger.info(
            "Starting Discord client and webhook server on %s:%d",
            config.server.host,
            config.server.port,
        )
        tasks = [
            asyncio.create_task(client.start(config.discord.token.get_secret_value()), name="discord"),
            asyncio.create_task(server.serve(), name="webhook-server"),
        ]
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

        await _stop(pending, logger)
        if not client.is_closed():
            await client.close()

        exit_code = 0
        for task in done:
            error = task.exception()
            if error is not None:
                logger.error("%s stopped with an error", task.get_name(), exc_info=error)
                exit_code = 1
            else:
                logger.warning("%s stopped; shutting down", task.get_name())
        return exit_code
    finally:
        await db_service.close()
        logger.info("Database connection closed")


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Mirror a Discord forum channel and GitHub Discussions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                              # Run with config.yaml
  %(prog)s -c bridge.yaml -v            # Custom config, debug logging
  %(prog)s --list-categories            # Show discussion category IDs and exit
        """,
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--list-categories",
        action="store_true",
        help="Print the repository's discussion categories and exit",
    )
    args = parser.parse_args()

    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
    except Exception as e:
        logger.error("Invalid configuration in %s: %s", args.config, e)
        return 1

    try:
        if args.list_categories:
            return asyncio.run(list_categories(config))
        return asyncio.run(run_bridge(config, args.verbose, logger))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
    except Exception:
        logger.exception("Fatal error")
        return 1


if __name__ == "__main__":
    sys.exit(main())
