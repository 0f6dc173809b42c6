"""
Luna CRM - command line entry point.

    luna serve                       Run the API with uvicorn
    luna migrate-ownership           Give un-owned records to the first user
    luna cleanup-unowned --confirm   Delete un-owned records (irreversible)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from luna.config import Settings, get_settings
from luna.core.errors import ConfigurationError, NoIdentityError
from luna.services.ownership import OwnershipMigrator
from luna.storage import open_storage

logger = logging.getLogger("luna")


async def run_migration(settings: Settings, delay_seconds: float) -> int:
    storage = await open_storage(settings)
    try:
        migrator = OwnershipMigrator(storage.identities, storage.resources)
        try:
            report = await migrator.migrate(delay_seconds=delay_seconds)
        except NoIdentityError as e:
            logger.error(str(e))
            return 1
        logger.info(
            f"Migration complete: {report.migrated_total} records assigned to "
            f"{report.owner_email}"
        )
        return 0
    finally:
        await storage.close()


async def run_cleanup(settings: Settings, delay_seconds: float) -> int:
    storage = await open_storage(settings)
    try:
        migrator = OwnershipMigrator(storage.identities, storage.resources)
        report = await migrator.cleanup_unowned(confirm_delay_seconds=delay_seconds)
        logger.info(f"Cleanup complete: {report.deleted_total} records deleted")
        return 0
    finally:
        await storage.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="luna",
        description="Luna CRM server and data maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the API on port 3000
  luna serve --port 3000

  # Assign records created before multi-user support to the first user
  luna migrate-ownership

  # Delete records that still have no owner
  luna cleanup-unowned --confirm
        """,
    )
    parser.add_argument("--log-level", help="Override LOG_LEVEL (e.g. DEBUG)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, help="Listen port (default: PORT or 3000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes (development)")

    migrate = subparsers.add_parser(
        "migrate-ownership", help="Assign un-owned records to the earliest user"
    )
    migrate.add_argument(
        "--delay", type=float, default=5, help="Seconds to wait before writing (default: 5)"
    )

    cleanup = subparsers.add_parser(
        "cleanup-unowned", help="Delete records that have no owner (irreversible)"
    )
    cleanup.add_argument(
        "--confirm", action="store_true", help="Required: acknowledge that records will be deleted"
    )
    cleanup.add_argument(
        "--delay", type=float, default=10, help="Seconds to wait before deleting (default: 10)"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()

    logging.basicConfig(
        level=(args.log_level or settings.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        settings.validate_for_startup()
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "luna.api.app:app",
            host=args.host,
            port=args.port or settings.port,
            reload=args.reload,
            log_level=settings.log_level.lower(),
        )
        return 0

    try:
        if args.command == "migrate-ownership":
            return asyncio.run(run_migration(settings, args.delay))

        if args.command == "cleanup-unowned":
            if not args.confirm:
                logger.error("Refusing to delete records without --confirm")
                return 2
            return asyncio.run(run_cleanup(settings, args.delay))
    except KeyboardInterrupt:
        logger.warning("Cancelled, nothing further was written")
        return 130

    return 2


if __name__ == "__main__":
    sys.exit(main())
