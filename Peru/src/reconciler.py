"""Non-destructive merge of portal records into the candidate store."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fuzzywuzzy import fuzz

from .change_detector import ChangeDetector
from .config import DATA_SOURCE_LABEL, PARTY_MATCH_THRESHOLD, SOURCE_NAME, setup_logging
from .database import CandidateStore
from .exceptions import ReconcileError, SlugConflictError, StoreError
from .models import (
    CanonicalCandidate,
    ExistingCandidate,
    ReconcileOutcome,
    ReconcileResult,
)
from .normalization import create_slug, normalize_name

logger = setup_logging(__name__)

# Counts that only ever grow across sources
MONOTONIC_FIELDS = {"party_resignations"}
# Set on insert, never rewritten
INSERT_ONLY_FIELDS = {"slug"}


def is_empty(value: Any) -> bool:
    """None, blank strings, empty collections and all-empty objects carry no data."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, dict):
        return all(is_empty(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def coalesce_updates(existing: Dict[str, Any], incoming: Dict[str, Any]) -> Dict[str, Any]:
    """
    Compute the column updates that merge an incoming row into a stored one.

    Empty incoming values never replace stored data. Non-empty incoming
    values replace stored values, collections as a whole. Monotonic counts
    keep the larger value.

    Args:
        existing: Stored candidate row
        incoming: Row built from the incoming record

    Returns:
        Columns whose stored value must change
    """
    updates: Dict[str, Any] = {}
    for field, value in incoming.items():
        if field in INSERT_ONLY_FIELDS:
            continue
        current = existing.get(field)
        if field in MONOTONIC_FIELDS:
            if (value or 0) > (current or 0):
                updates[field] = value
            continue
        if is_empty(value):
            continue
        if current != value:
            updates[field] = value
    return updates


class Reconciler:
    """Create or coalesce-update candidates, gated by the change detector."""

    def __init__(self, store: CandidateStore, change_detector: Optional[ChangeDetector] = None,
                 source: str = SOURCE_NAME):
        self.store = store
        self.change_detector = change_detector or ChangeDetector(store)
        self.source = source
        self._parties: Optional[List[Dict[str, Any]]] = None

    def _party_cache(self) -> List[Dict[str, Any]]:
        if self._parties is None:
            self._parties = list(self.store.list_parties())
        return self._parties

    def resolve_party(self, name: Optional[str], short_name: Optional[str] = None) -> Optional[str]:
        """
        Find a party by name or short name, creating it when absent.

        Args:
            name: Party name from the portal
            short_name: Party acronym, if known

        Returns:
            Party id, or None when the record names no party
        """
        if is_empty(name):
            return None
        target = normalize_name(name)
        target_short = normalize_name(short_name)

        best_party = None
        best_score = 0
        for party in self._party_cache():
            party_name = normalize_name(party.get("name"))
            party_short = normalize_name(party.get("short_name"))
            if party_name == target or (party_short and party_short in (target, target_short)):
                return str(party["id"])
            score = fuzz.token_sort_ratio(target, party_name)
            if score > best_score:
                best_party, best_score = party, score

        if best_party is not None and best_score >= PARTY_MATCH_THRESHOLD:
            logger.debug(f"Party '{name}' matched '{best_party['name']}' ({best_score})")
            return str(best_party["id"])

        party_id = self.store.create_party(name, short_name, create_slug(name))
        self._party_cache().append({"id": party_id, "name": name, "short_name": short_name})
        return party_id

    def fingerprint_source(self, incoming: CanonicalCandidate) -> str:
        # One fingerprint per portal listing; a person may be listed in several categories
        if incoming.person_ref:
            return f"{self.source}:{incoming.person_ref}"
        return self.source

    def _update(self, candidate_id: str, existing_row: Dict[str, Any], incoming_row: Dict[str, Any]) -> None:
        updates = coalesce_updates(existing_row, incoming_row)
        updates["data_source"] = DATA_SOURCE_LABEL
        updates["last_updated"] = datetime.now(timezone.utc).isoformat()
        self.store.update_candidate(candidate_id, updates)

    def reconcile(self, incoming: CanonicalCandidate,
                  existing_match: Optional[ExistingCandidate]) -> ReconcileResult:
        """
        Merge one incoming record into the store.

        Args:
            incoming: Normalized record
            existing_match: Resolved stored candidate, None to create

        Returns:
            Outcome and the id of the candidate written or skipped

        Raises:
            ReconcileError: A store operation failed for this record
        """
        source = self.fingerprint_source(incoming)
        try:
            if existing_match is not None and not self.change_detector.has_changed(
                    existing_match.id, source, incoming):
                self.change_detector.commit(existing_match.id, source, incoming)
                return ReconcileResult(outcome=ReconcileOutcome.SKIPPED, candidate_id=existing_match.id)

            party_id = self.resolve_party(incoming.party_name, incoming.party_short_name)
            row = incoming.to_candidate_row(party_id)

            if existing_match is None:
                try:
                    row["data_source"] = DATA_SOURCE_LABEL
                    row["last_updated"] = datetime.now(timezone.utc).isoformat()
                    candidate_id = self.store.insert_candidate(row)
                    outcome = ReconcileOutcome.CREATED
                except SlugConflictError:
                    conflicting = self.store.get_candidate_by_slug(row["slug"])
                    if conflicting is None:
                        raise
                    candidate_id = str(conflicting["id"])
                    logger.info(f"Slug '{row['slug']}' already taken, updating candidate {candidate_id}")
                    if not self.change_detector.has_changed(candidate_id, source, incoming):
                        self.change_detector.commit(candidate_id, source, incoming)
                        return ReconcileResult(outcome=ReconcileOutcome.SKIPPED, candidate_id=candidate_id)
                    self._update(candidate_id, conflicting, row)
                    outcome = ReconcileOutcome.UPDATED
            else:
                candidate_id = existing_match.id
                existing_row = self.store.get_candidate(candidate_id) or {}
                self._update(candidate_id, existing_row, row)
                outcome = ReconcileOutcome.UPDATED

            self.change_detector.commit(candidate_id, source, incoming)
        except StoreError as e:
            raise ReconcileError(f"Could not reconcile {incoming.reference}: {e}") from e

        return ReconcileResult(outcome=outcome, candidate_id=candidate_id)
