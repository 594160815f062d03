"""Main orchestration and CLI for the Peru JNE candidate sync."""

import json
import signal
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import List

import click

from .checkpoint import CheckpointStore
from .config import DRY_RUN, HEADLESS, LOG_DIR, PORTAL_CATEGORIES, setup_logging
from .database import SupabaseStore
from .orchestrator import BatchOrchestrator
from .portal_fetcher import PortalClient, PortalSession
from .models import RunStatistics

logger = setup_logging(__name__)

SUMMARY_FILE = LOG_DIR / "last_run_summary.json"


def write_run_summary(stats: RunStatistics, path: Path = SUMMARY_FILE) -> Path:
    """Write the machine-readable run summary, including pending checkpoints."""
    path.parent.mkdir(parents=True, exist_ok=True)
    summary = stats.model_dump(mode="json")
    summary["finished_at"] = datetime.now().isoformat()
    path.write_text(json.dumps(summary, indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def _install_signal_handlers(orchestrator: BatchOrchestrator) -> dict:
    def handle(signum, frame):
        logger.warning(f"\n⚠️ Received signal {signum}, checkpointing after the current item...")
        orchestrator.request_cancel()

    previous = {}
    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, handle)
    return previous


def _restore_signal_handlers(previous: dict) -> None:
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def log_summary(stats: RunStatistics) -> None:
    logger.info("\n" + "=" * 60)
    logger.info("SYNC CANCELLED" if stats.cancelled else "SYNC COMPLETE")
    for category in stats.categories:
        logger.info(
            f"  {category.category:<18} {category.state.value:<13} "
            f"listed={category.listed} created={category.created} updated={category.updated} "
            f"skipped={category.skipped} errors={category.errors + category.fetch_failures}"
        )
    logger.info(f"Processed: {stats.total('processed')}")
    logger.info(f"Created: {stats.total('created')}")
    logger.info(f"Updated: {stats.total('updated')}")
    logger.info(f"Skipped (unchanged): {stats.total('skipped')}")
    logger.info(f"Dropped (no identity): {stats.total('dropped')}")
    logger.info(f"Errors: {stats.total('errors') + stats.total('fetch_failures')}")
    logger.info(f"Name-only matches to review: {len(stats.review_candidates)}")
    if stats.checkpointed_categories:
        logger.info(f"Checkpointed (resume later): {', '.join(stats.checkpointed_categories)}")
    logger.info(f"Processing time: {stats.processing_time_seconds:.2f} seconds")
    if stats.dry_run:
        logger.info("\n⚠️ DRY RUN - No actual database changes were made")
    logger.info("=" * 60)


def run_peru_update(categories: List[str], ignore_checkpoint: bool = False,
                    dry_run: bool = DRY_RUN, headless: bool = HEADLESS) -> RunStatistics:
    """
    Run the complete Peru candidate sync.

    Args:
        categories: Category keys to process, in order
        ignore_checkpoint: Refetch listings even when checkpoints exist
        dry_run: Log writes instead of performing them
        headless: Run the browser without a window

    Returns:
        Run statistics
    """
    start_time = time.time()

    logger.info("=" * 60)
    logger.info("Starting Peru JNE Candidate Sync")
    logger.info(f"Time: {datetime.now()}")
    logger.info(f"Categories: {', '.join(categories)}")
    logger.info(f"DRY RUN: {dry_run}")
    logger.info("=" * 60)

    logger.info("\n🗄️ STEP 1: Initializing database connection...")
    db = SupabaseStore(dry_run=dry_run)
    run_id = db.start_sync_run(categories)

    logger.info("\n🌐 STEP 2: Starting browser session...")
    try:
        with PortalSession(headless=headless) as session:
            orchestrator = BatchOrchestrator(PortalClient(session), db, CheckpointStore())

            logger.info("\n🔄 STEP 3: Processing categories...")
            previous_handlers = _install_signal_handlers(orchestrator)
            try:
                stats = orchestrator.run(categories, ignore_checkpoint=ignore_checkpoint)
            finally:
                _restore_signal_handlers(previous_handlers)
    except (Exception, KeyboardInterrupt) as e:
        failed = RunStatistics(dry_run=dry_run, fatal_error=str(e) or type(e).__name__,
                               processing_time_seconds=time.time() - start_time)
        db.finish_sync_run(run_id, failed, "cancelled" if isinstance(e, KeyboardInterrupt) else "failed")
        raise

    stats.dry_run = dry_run
    stats.processing_time_seconds = time.time() - start_time

    logger.info("\n📝 STEP 4: Recording run...")
    if stats.fatal_error:
        status = "failed"
    elif stats.cancelled:
        status = "cancelled"
    else:
        status = "completed"
    db.finish_sync_run(run_id, stats, status)
    summary_path = write_run_summary(stats)
    logger.info(f"Run summary written to {summary_path}")

    log_summary(stats)
    return stats


@click.command()
@click.option("--category", "-c", type=click.Choice(sorted(PORTAL_CATEGORIES)), default=None,
              help="Process only this category (default: all).")
@click.option("--ignore-checkpoint", is_flag=True,
              help="Discard existing checkpoints and refetch listings.")
@click.option("--dry-run", is_flag=True, help="Log database writes instead of performing them.")
@click.option("--headed", is_flag=True, help="Show the browser window.")
def main(category, ignore_checkpoint, dry_run, headed):
    """Sync candidates from the JNE Voto Informado portal."""
    categories = [category] if category else list(PORTAL_CATEGORIES)
    try:
        stats = run_peru_update(
            categories,
            ignore_checkpoint=ignore_checkpoint,
            dry_run=dry_run or DRY_RUN,
            headless=HEADLESS and not headed,
        )
    except KeyboardInterrupt:
        logger.info("\n⚠️ Sync cancelled by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Sync failed: {e}", exc_info=True)
        sys.exit(1)

    if stats.fatal_error:
        logger.error(f"Sync aborted: {stats.fatal_error}")
        sys.exit(1)
    if stats.cancelled:
        logger.warning("Sync cancelled; progress saved to checkpoints")
        sys.exit(130)
    if stats.total("errors") or stats.total("fetch_failures"):
        logger.warning("Sync completed with per-item errors")
    else:
        logger.info("Sync completed successfully")
    sys.exit(0)


if __name__ == "__main__":
    main()
