"""Content fingerprints used to skip writes for unchanged portal data."""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Union

from .config import ENTITY_TYPE, setup_logging
from .database import CandidateStore
from .models import CanonicalCandidate, DataFingerprint

logger = setup_logging(__name__)

FingerprintInput = Union[CanonicalCandidate, Dict[str, Any]]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def canonical_json(payload: Dict[str, Any]) -> str:
    """Stable serialization: sorted keys, compact separators, raw UTF-8."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_fingerprint(fingerprint_input: FingerprintInput) -> str:
    """
    Digest every synced field of a record.

    Args:
        fingerprint_input: Canonical record or an already JSON-ready dict

    Returns:
        Digest formatted as 'sha256:<hex>'
    """
    if isinstance(fingerprint_input, CanonicalCandidate):
        payload = fingerprint_input.fingerprint_payload()
    else:
        payload = fingerprint_input
    digest = hashlib.sha256(canonical_json(payload).encode("utf-8")).hexdigest()
    return f"sha256:{digest}"


class ChangeDetector:
    """Compare and record fingerprints in the store's data_hashes table."""

    def __init__(self, store: CandidateStore, entity_type: str = ENTITY_TYPE,
                 clock: Callable[[], datetime] = _utc_now):
        self.store = store
        self.entity_type = entity_type
        self.clock = clock

    def has_changed(self, entity_id: str, source: str, fingerprint_input: FingerprintInput) -> bool:
        """
        Check whether a record differs from the last committed observation.

        A missing stored fingerprint counts as changed.
        """
        stored = self.store.get_fingerprint(self.entity_type, entity_id, source)
        if stored is None:
            return True
        return stored.data_hash != compute_fingerprint(fingerprint_input)

    def commit(self, entity_id: str, source: str, fingerprint_input: FingerprintInput) -> DataFingerprint:
        """
        Record a successful check of an entity.

        last_checked_at always advances; last_changed_at only advances when
        the digest differs from the stored one.

        Returns:
            The fingerprint written to the store
        """
        now = self.clock()
        digest = compute_fingerprint(fingerprint_input)
        stored: Optional[DataFingerprint] = self.store.get_fingerprint(self.entity_type, entity_id, source)

        if stored is not None and stored.data_hash == digest:
            last_changed_at = stored.last_changed_at
        else:
            last_changed_at = now

        fingerprint = DataFingerprint(
            entity_type=self.entity_type,
            entity_id=entity_id,
            source=source,
            data_hash=digest,
            last_checked_at=now,
            last_changed_at=last_changed_at,
        )
        self.store.upsert_fingerprint(fingerprint)
        return fingerprint
