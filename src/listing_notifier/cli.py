from __future__ import annotations

import argparse
import logging
import sys

from listing_notifier.config import AppConfig, ConfigError, load_config, require_listing_url
from listing_notifier.dispatch import NotificationDispatcher
from listing_notifier.errors import ListingNotifierError
from listing_notifier.filters import PhotoCountFilter
from listing_notifier.logging_config import setup_logging
from listing_notifier.models import Record
from listing_notifier.notifiers import Notifier, TelegramMediaGroupNotifier, render_caption
from listing_notifier.scanner import ListingScanner
from listing_notifier.scheduler import CycleFailed, CycleScheduler
from listing_notifier.service import ListingWatchService
from listing_notifier.sources import ListingSource, create_source
from listing_notifier.store import SQLiteStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listing-notifier",
        description="Poll a classifieds listing page and post new advertisements to Telegram.",
    )
    parser.add_argument(
        "-c",
        "--config",
        default="config.yaml",
        help="Path to config YAML file (default: config.yaml, optional)",
    )
    parser.add_argument(
        "--log-level",
        help="Override config log level (e.g. INFO, DEBUG)",
    )
    parser.add_argument(
        "--log-file",
        help="Also write logs to this file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    run = subparsers.add_parser("run", help="Poll forever, one cycle per interval")
    run.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Stop after this many cycles",
    )
    subparsers.add_parser("run-once", help="Run a single cycle and exit")
    subparsers.add_parser("dry-run", help="Run a single cycle without recording or posting")
    subparsers.add_parser("init-db", help="Initialize SQLite schema")

    backfill = subparsers.add_parser(
        "backfill",
        help="Mark every current listing entry seen without posting",
    )
    backfill.add_argument(
        "--mark-seen",
        action="store_true",
        help="Required safety flag for backfill operation",
    )

    prune = subparsers.add_parser("prune", help="Keep only the newest seen ids")
    prune.add_argument(
        "--keep",
        type=int,
        default=None,
        help="Number of ids to keep (default: storage.keep_records)",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        app_config = load_config(args.config)
    except ConfigError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    setup_logging(args.log_level or app_config.log_level, args.log_file or app_config.log_file)

    try:
        store = _build_store(app_config)
        store.init_db()
    except (ConfigError, ListingNotifierError) as exc:
        logger.error("Cannot open dedup store: %s", exc)
        return 2

    if args.command == "init-db":
        logger.info("Initialized SQLite database at %s", app_config.storage.path)
        return 0

    if args.command == "prune":
        keep = args.keep if args.keep is not None else app_config.storage.keep_records
        if keep < 1:
            parser.error("--keep must be >= 1")
        with store.session() as seen:
            removed = seen.prune(keep)
        logger.info("Pruned %d seen ids, kept newest %d", removed, keep)
        return 0

    try:
        listing_url = require_listing_url(app_config)
        source = create_source(app_config.listing)
    except (ConfigError, ValueError) as exc:
        logger.error("%s", exc)
        return 2

    if args.command == "backfill":
        if not args.mark_seen:
            parser.error("backfill requires --mark-seen")
        return _run_backfill(store=store, source=source, listing_url=listing_url)

    dry_run = args.command == "dry-run" or app_config.dispatch.dry_run
    notifier: Notifier | None = None
    if not dry_run:
        try:
            notifier = _build_notifier(app_config)
        except ConfigError as exc:
            logger.error("%s", exc)
            return 2

    service = ListingWatchService(
        listing_url=listing_url,
        scanner=ListingScanner(
            source=source,
            existing_attempts=app_config.scan.existing_attempts,
        ),
        store=store,
        dispatcher=NotificationDispatcher(
            notifier=notifier or _NullNotifier(),
            record_filter=PhotoCountFilter(app_config.dispatch.min_images),
            delay_seconds=app_config.dispatch.delay_ms / 1000,
        ),
        dry_run=dry_run,
        preview_callback=_telegram_dry_run_preview if dry_run else None,
    )
    scheduler = CycleScheduler(
        service.run_cycle,
        interval_seconds=app_config.scheduler.cycle_interval_ms / 1000,
    )

    if args.command == "run":
        try:
            scheduler.run_forever(max_cycles=args.max_cycles)
        except KeyboardInterrupt:
            logger.info("Interrupted; stopping after %d cycles", scheduler.cycles)
        return 0

    outcome = scheduler.run_one()
    if isinstance(outcome, CycleFailed):
        return 1
    return 0 if outcome.value.ok else 1


def _build_store(app_config: AppConfig) -> SQLiteStore:
    if app_config.storage.type != "sqlite":
        raise ConfigError(f"Unsupported storage type: {app_config.storage.type}")
    return SQLiteStore(app_config.storage.path)


def _build_notifier(app_config: AppConfig) -> TelegramMediaGroupNotifier:
    bot_token = app_config.bot_token()
    if not bot_token:
        raise ConfigError(
            f"Missing Telegram bot token in environment variable {app_config.telegram.token_env_var}"
        )
    if not app_config.telegram.chat_id:
        raise ConfigError("Missing Telegram chat id (TELEGRAM_TARGET_CHAT_ID or telegram.chat_id)")
    return TelegramMediaGroupNotifier(
        bot_token=bot_token,
        chat_id=app_config.telegram.chat_id,
        api_base_url=app_config.telegram.api_base_url,
        max_images=app_config.dispatch.max_images,
        timeout_seconds=app_config.telegram.timeout_seconds,
    )


def _run_backfill(*, store: SQLiteStore, source: ListingSource, listing_url: str) -> int:
    try:
        candidates = source.fetch_listing(listing_url)
        ids = [candidate.id for candidate in candidates if not candidate.is_promoted]
        with store.session() as seen:
            already = seen.contains_any(ids)
            fresh = [entry_id for entry_id in ids if entry_id not in already]
            seen.insert_all(fresh)
    except ListingNotifierError as exc:
        logger.error("Backfill failed: %s", exc)
        return 1

    logger.info("Backfill complete | marked_seen=%d already_seen=%d", len(fresh), len(already))
    return 0


class _NullNotifier(Notifier):
    def post(self, record: Record) -> None:
        raise RuntimeError("notifier is required when dry_run is false")


def _telegram_dry_run_preview(record: Record) -> None:
    print("[DRY RUN] WOULD POST CAPTION:")
    print(render_caption(record))
    print(f"({len(record.image_urls)} photos)")
    print("")


if __name__ == "__main__":
    raise SystemExit(main())
