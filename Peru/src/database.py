"""Database operations for the Peru candidate sync."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from supabase import create_client, Client

from .config import SUPABASE_URL, SUPABASE_KEY, DRY_RUN, SOURCE_NAME, setup_logging
from .exceptions import SlugConflictError, StoreError
from .models import DataFingerprint, ExistingCandidate, RunStatistics

logger = setup_logging(__name__)

PAGE_SIZE = 1000
EXISTING_CANDIDATE_COLUMNS = "id, dni, full_name, cargo, party_id, slug"


class CandidateStore(ABC):
    """Keyed record operations the sync needs from the persistent store."""

    @abstractmethod
    def get_existing_candidates(self) -> List[ExistingCandidate]:
        """All candidates, reduced to the fields used for matching."""

    @abstractmethod
    def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        """Full candidate row by id."""

    @abstractmethod
    def get_candidate_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        """Full candidate row by slug."""

    @abstractmethod
    def insert_candidate(self, row: Dict[str, Any]) -> str:
        """
        Insert a candidate row.

        Returns:
            Id of the new candidate

        Raises:
            SlugConflictError: A candidate with the same slug exists
        """

    @abstractmethod
    def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> None:
        """Apply column updates to a candidate."""

    @abstractmethod
    def list_parties(self) -> List[Dict[str, Any]]:
        """All parties as dicts with id, name and short_name."""

    @abstractmethod
    def create_party(self, name: str, short_name: Optional[str], slug: str) -> str:
        """Create a party and return its id."""

    @abstractmethod
    def get_fingerprint(self, entity_type: str, entity_id: str, source: str) -> Optional[DataFingerprint]:
        """Stored fingerprint for (entity_type, entity_id, source)."""

    @abstractmethod
    def upsert_fingerprint(self, fingerprint: DataFingerprint) -> None:
        """Insert or replace a fingerprint row."""

    def start_sync_run(self, categories: List[str]) -> Optional[str]:
        """Record the start of a run. Stores without run logging return None."""
        return None

    def finish_sync_run(self, run_id: Optional[str], stats: RunStatistics, status: str) -> None:
        """Record the outcome of a run."""
        return None


def _is_unique_violation(error: Exception) -> bool:
    code = getattr(error, "code", None)
    return code == "23505" or "duplicate key" in str(error).lower()


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class SupabaseStore(CandidateStore):
    """CandidateStore backed by Supabase tables."""

    def __init__(self, url: Optional[str] = SUPABASE_URL, key: Optional[str] = SUPABASE_KEY,
                 dry_run: bool = DRY_RUN):
        """
        Initialize Supabase client.

        Raises:
            ValueError: If credentials are missing
        """
        if not url or not key:
            raise ValueError("Supabase credentials not found in environment (SUPABASE_URL, SUPABASE_KEY)")
        self.client: Client = create_client(url, key)
        self.dry_run = dry_run
        logger.info("Connected to Supabase")

    def _select_all(self, table: str, columns: str) -> List[Dict[str, Any]]:
        rows: List[Dict[str, Any]] = []
        start = 0
        while True:
            result = self.client.table(table).select(columns).range(start, start + PAGE_SIZE - 1).execute()
            rows.extend(result.data)
            if len(result.data) < PAGE_SIZE:
                return rows
            start += PAGE_SIZE

    def get_existing_candidates(self) -> List[ExistingCandidate]:
        try:
            rows = self._select_all("candidates", EXISTING_CANDIDATE_COLUMNS)
        except Exception as e:
            raise StoreError(f"Error fetching existing candidates: {e}") from e

        candidates = [
            ExistingCandidate(
                id=str(row["id"]),
                national_id=row.get("dni"),
                full_name=row.get("full_name") or "",
                role=row.get("cargo"),
                party_id=row.get("party_id"),
                slug=row.get("slug"),
            )
            for row in rows
        ]
        logger.info(f"Loaded {len(candidates)} existing candidates")
        return candidates

    def _get_one(self, column: str, value: str) -> Optional[Dict[str, Any]]:
        try:
            result = self.client.table("candidates").select("*").eq(column, value).limit(1).execute()
        except Exception as e:
            raise StoreError(f"Error reading candidate {column}={value}: {e}") from e
        return result.data[0] if result.data else None

    def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        return self._get_one("id", candidate_id)

    def get_candidate_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        return self._get_one("slug", slug)

    def insert_candidate(self, row: Dict[str, Any]) -> str:
        if self.dry_run:
            placeholder = str(uuid4())
            logger.info(f"DRY RUN: Would insert candidate {row.get('full_name')} ({placeholder})")
            return placeholder

        try:
            result = self.client.table("candidates").insert(row).execute()
        except Exception as e:
            if _is_unique_violation(e):
                raise SlugConflictError(row.get("slug", "")) from e
            raise StoreError(f"Error inserting candidate {row.get('full_name')}: {e}") from e
        return str(result.data[0]["id"])

    def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> None:
        if self.dry_run:
            logger.info(f"DRY RUN: Would update candidate {candidate_id}: {sorted(updates)}")
            return

        try:
            self.client.table("candidates").update(updates).eq("id", candidate_id).execute()
        except Exception as e:
            raise StoreError(f"Error updating candidate {candidate_id}: {e}") from e

    def list_parties(self) -> List[Dict[str, Any]]:
        try:
            return self._select_all("parties", "id, name, short_name")
        except Exception as e:
            raise StoreError(f"Error fetching parties: {e}") from e

    def create_party(self, name: str, short_name: Optional[str], slug: str) -> str:
        if self.dry_run:
            placeholder = str(uuid4())
            logger.info(f"DRY RUN: Would create party {name} ({placeholder})")
            return placeholder

        try:
            result = self.client.table("parties").insert({
                "name": name,
                "short_name": short_name,
                "slug": slug,
            }).execute()
        except Exception as e:
            raise StoreError(f"Error creating party {name}: {e}") from e
        logger.info(f"Created party: {name}")
        return str(result.data[0]["id"])

    def get_fingerprint(self, entity_type: str, entity_id: str, source: str) -> Optional[DataFingerprint]:
        try:
            result = self.client.table("data_hashes").select("*")\
                .eq("entity_type", entity_type)\
                .eq("entity_id", entity_id)\
                .eq("source", source)\
                .limit(1)\
                .execute()
        except Exception as e:
            raise StoreError(f"Error reading fingerprint for {entity_id}: {e}") from e

        if not result.data:
            return None
        row = result.data[0]
        return DataFingerprint(
            entity_type=row["entity_type"],
            entity_id=str(row["entity_id"]),
            source=row["source"],
            data_hash=row["data_hash"],
            last_checked_at=_parse_timestamp(row["last_checked_at"]),
            last_changed_at=_parse_timestamp(row["last_changed_at"]),
        )

    def upsert_fingerprint(self, fingerprint: DataFingerprint) -> None:
        if self.dry_run:
            logger.debug(f"DRY RUN: Would store fingerprint for {fingerprint.entity_id}")
            return

        try:
            self.client.table("data_hashes").upsert(
                fingerprint.model_dump(mode="json"),
                on_conflict="entity_type,entity_id,source"
            ).execute()
        except Exception as e:
            raise StoreError(f"Error storing fingerprint for {fingerprint.entity_id}: {e}") from e

    def start_sync_run(self, categories: List[str]) -> Optional[str]:
        if self.dry_run:
            run_id = str(uuid4())
            logger.info(f"DRY RUN: Would create sync run with ID {run_id}")
            return run_id

        try:
            result = self.client.table("sync_runs").insert({
                "source": SOURCE_NAME,
                "categories": categories,
                "status": "running",
                "started_at": datetime.now(timezone.utc).isoformat(),
            }).execute()
        except Exception as e:
            # Run logging is informational; the sync proceeds without it
            logger.warning(f"Could not create sync run record: {e}")
            return None
        return str(result.data[0]["id"])

    def finish_sync_run(self, run_id: Optional[str], stats: RunStatistics, status: str) -> None:
        if run_id is None or self.dry_run:
            return

        try:
            self.client.table("sync_runs").update({
                "status": status,
                "finished_at": datetime.now(timezone.utc).isoformat(),
                "records_processed": stats.total("processed"),
                "records_created": stats.total("created"),
                "records_updated": stats.total("updated"),
                "records_skipped": stats.total("skipped"),
                "errors": stats.total("errors") + stats.total("fetch_failures"),
            }).eq("id", run_id).execute()
        except Exception as e:
            logger.warning(f"Could not update sync run {run_id}: {e}")
