"""Batch orchestration of the portal sync across listing categories."""

import threading
import time
from collections import deque
from typing import Deque, Iterable, List, Optional

from .checkpoint import CheckpointStore
from .config import (
    BATCH_DELAY_SECONDS,
    BATCH_SIZE,
    BROWSER_RESTART_EVERY,
    CHECKPOINT_INTERVAL,
    ITEM_DELAY_SECONDS,
    PORTAL_CATEGORIES,
    setup_logging,
)
from .database import CandidateStore
from .deduplication import CandidateResolver
from .exceptions import PortalSessionError, PortalTransientError, ReconcileError, SyncCancelled
from .models import (
    CandidateRole,
    CanonicalCandidate,
    CategoryState,
    CategoryStatistics,
    ExistingCandidate,
    MatchMethod,
    ReconcileOutcome,
    RunStatistics,
)
from .reconciler import Reconciler
from .transformer import parse_detail

logger = setup_logging(__name__)


class BatchOrchestrator:
    """
    Drive listing fetch, detail fetch, resolution and reconcile per category.

    Items are processed strictly one at a time. Cancellation is honoured
    between items and always leaves a checkpoint behind.
    """

    def __init__(self, portal, store: CandidateStore, checkpoints: CheckpointStore,
                 reconciler: Optional[Reconciler] = None,
                 batch_size: int = BATCH_SIZE,
                 checkpoint_interval: int = CHECKPOINT_INTERVAL,
                 item_delay: float = ITEM_DELAY_SECONDS,
                 batch_delay: float = BATCH_DELAY_SECONDS,
                 restart_every: int = BROWSER_RESTART_EVERY):
        """
        Args:
            portal: PortalClient (or any object with fetch_listing, fetch_detail, restart)
            store: Candidate store
            checkpoints: Checkpoint persistence
            reconciler: Reconciler, built from the store when omitted
            batch_size: Items per batch
            checkpoint_interval: Processed items between checkpoint writes
            item_delay: Seconds between items
            batch_delay: Seconds between batches
            restart_every: Detail fetches between browser restarts, 0 disables
        """
        self.portal = portal
        self.store = store
        self.checkpoints = checkpoints
        self.reconciler = reconciler or Reconciler(store)
        self.batch_size = max(1, batch_size)
        self.checkpoint_interval = max(1, checkpoint_interval)
        self.item_delay = item_delay
        self.batch_delay = batch_delay
        self.restart_every = restart_every
        self.resolver: Optional[CandidateResolver] = None
        self.review_candidates: List[dict] = []
        self._cancel_event = threading.Event()
        self._detail_fetches = 0

    def request_cancel(self) -> None:
        """Ask the run to stop after the item in flight."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _pause(self, seconds: float) -> None:
        # Returns early when cancellation is requested
        if seconds > 0:
            self._cancel_event.wait(seconds)

    def _transition(self, stats: CategoryStatistics, state: CategoryState) -> None:
        logger.info(f"[{stats.category}] {stats.state.value} -> {state.value}")
        stats.state = state

    def run(self, categories: Iterable[str], ignore_checkpoint: bool = False) -> RunStatistics:
        """
        Process the given categories in order.

        Args:
            categories: Category keys from PORTAL_CATEGORIES
            ignore_checkpoint: Discard existing checkpoints and refetch listings

        Returns:
            Run statistics; fatal_error is set when the browser session was
            lost for good and the run was aborted
        """
        start_time = time.time()
        stats = RunStatistics()

        logger.info("\n🔍 Loading existing candidates...")
        self.resolver = CandidateResolver(self.store.get_existing_candidates())

        try:
            for category in categories:
                if self.cancelled:
                    stats.cancelled = True
                    break
                category_stats = CategoryStatistics(category=category)
                stats.categories.append(category_stats)
                try:
                    self.run_category(category, category_stats, ignore_checkpoint)
                except SyncCancelled:
                    stats.cancelled = True
                    break
                except PortalSessionError as e:
                    logger.error(f"💥 Fatal browser session error, aborting run: {e}")
                    stats.fatal_error = str(e)
                    break
        finally:
            stats.review_candidates = list(self.review_candidates)
            stats.checkpointed_categories = self.checkpoints.pending_categories()
            stats.processing_time_seconds = time.time() - start_time

        return stats

    def run_category(self, category: str, stats: CategoryStatistics,
                     ignore_checkpoint: bool = False) -> CategoryStatistics:
        """
        Process one category from its checkpoint or a fresh listing.

        Raises:
            SyncCancelled: Cancellation was requested; a checkpoint was written
            PortalSessionError: Fatal session loss; the queue, if loaded, was checkpointed
        """
        settings = PORTAL_CATEGORIES[category]
        role = CandidateRole(settings["role"])

        logger.info("=" * 60)
        logger.info(f"Category: {category} ({settings['path']})")
        logger.info("=" * 60)

        checkpoint = None
        if ignore_checkpoint:
            self.checkpoints.clear(category)
        else:
            checkpoint = self.checkpoints.load(category)

        failed_refs: List[str] = []
        if checkpoint is not None:
            queue: Deque[CanonicalCandidate] = deque(checkpoint.remaining_items)
            processed = checkpoint.processed_count
            failed_refs = list(checkpoint.failed_refs)
            stats.resumed = True
            logger.info(f"📂 Resuming {category} with {len(queue)} remaining items")
        else:
            try:
                listing = self.portal.fetch_listing(settings["path"], role)
            except PortalTransientError as e:
                logger.error(f"❌ Could not fetch listing for {category}: {e}")
                stats.errors += 1
                self._transition(stats, CategoryState.FAILED)
                return stats
            queue = deque(listing)
            processed = 0
        stats.listed = len(queue)
        self._transition(stats, CategoryState.LISTING_FETCHED)

        self._transition(stats, CategoryState.PROCESSING)
        last_saved = processed
        in_batch = 0
        try:
            while queue:
                if self.cancelled:
                    raise SyncCancelled(f"Cancelled during {category}")

                if in_batch == self.batch_size:
                    logger.info(f"[{category}] batch done, {len(queue)} remaining")
                    if processed - last_saved >= self.checkpoint_interval:
                        self.checkpoints.save(category, list(queue), processed, failed_refs)
                        last_saved = processed
                    self._pause(self.batch_delay)
                    in_batch = 0
                    if self.cancelled:
                        raise SyncCancelled(f"Cancelled during {category}")
                elif in_batch:
                    self._pause(self.item_delay)
                    if self.cancelled:
                        raise SyncCancelled(f"Cancelled during {category}")

                self.process_item(queue[0], stats, failed_refs)
                queue.popleft()
                processed += 1
                in_batch += 1
                stats.processed += 1
        except (SyncCancelled, PortalSessionError) as e:
            self.checkpoints.save(category, list(queue), processed, failed_refs)
            self._transition(stats, CategoryState.CHECKPOINTED)
            logger.warning(f"⏸️  {category} checkpointed with {len(queue)} items left: {e}")
            raise

        self.checkpoints.clear(category)
        self._transition(stats, CategoryState.COMPLETED)
        logger.info(
            f"✅ {category}: created={stats.created} updated={stats.updated} "
            f"skipped={stats.skipped} dropped={stats.dropped} "
            f"fetch_failures={stats.fetch_failures} errors={stats.errors}"
        )
        return stats

    def _fetch_detail(self, item: CanonicalCandidate):
        if self.restart_every and self._detail_fetches and self._detail_fetches % self.restart_every == 0:
            self.portal.restart()
        self._detail_fetches += 1
        return self.portal.fetch_detail(item.org_ref, item.person_ref)

    def process_item(self, item: CanonicalCandidate, stats: CategoryStatistics,
                     failed_refs: List[str]) -> None:
        """
        Fetch, normalize, resolve and reconcile one listing item.

        Per-item failures are logged and counted; only PortalSessionError
        propagates.
        """
        raw = None
        if item.org_ref and item.person_ref:
            try:
                raw = self._fetch_detail(item)
            except PortalSessionError:
                raise
            except PortalTransientError as e:
                logger.warning(f"⚠️  Skipping {item.reference}: {e}")
                stats.fetch_failures += 1
                failed_refs.append(item.reference)
                return
            except Exception as e:
                logger.error(f"Error fetching detail for {item.reference}: {e}")
                stats.errors += 1
                failed_refs.append(item.reference)
                return

        try:
            record = parse_detail(raw, item.role, item.org_ref, item.person_ref, listing=item) \
                if raw is not None else item
        except Exception as e:
            logger.error(f"Error parsing detail for {item.reference}: {e}")
            stats.errors += 1
            return
        if record is None:
            stats.dropped += 1
            return

        match, method = self.resolver.find_match(record)
        if method == MatchMethod.NAME:
            stats.name_only_matches += 1
            logger.warning(f"🔎 Name-only match for '{record.full_name}' -> {match.id}, flagged for review")
            self.review_candidates.append({
                "category": stats.category,
                "full_name": record.full_name,
                "person_ref": record.person_ref or "",
                "matched_candidate_id": match.id,
            })

        try:
            result = self.reconciler.reconcile(record, match)
        except ReconcileError as e:
            logger.error(f"❌ {e}")
            stats.errors += 1
            return
        except Exception as e:
            logger.error(f"❌ Unexpected error reconciling {record.reference}: {e}")
            stats.errors += 1
            return

        if result.outcome == ReconcileOutcome.CREATED:
            stats.created += 1
            self.resolver.register(ExistingCandidate(
                id=result.candidate_id,
                national_id=record.national_id,
                full_name=record.full_name,
                role=record.role.value,
                slug=record.slug,
            ))
        elif result.outcome == ReconcileOutcome.UPDATED:
            stats.updated += 1
        else:
            stats.skipped += 1
