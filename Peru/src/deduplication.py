"""Entity resolution: find the stored candidate an incoming record refers to."""

from typing import Dict, List, Optional, Tuple

from .config import setup_logging
from .models import CanonicalCandidate, ExistingCandidate, MatchMethod
from .normalization import normalize_name

logger = setup_logging(__name__)


class CandidateResolver:
    """
    Match incoming records against existing candidates.

    Precedence is strict, first match wins:
      1. equal national ID, when both sides have one
      2. equal normalized full name, when both sides have one

    A name match is refused when both records carry national IDs that
    differ, since those are two different people.
    """

    def __init__(self, existing_candidates: List[ExistingCandidate]):
        """
        Initialize resolver with existing candidates.

        Args:
            existing_candidates: Candidates currently in the store
        """
        self.by_national_id: Dict[str, ExistingCandidate] = {}
        self.by_name: Dict[str, ExistingCandidate] = {}
        for candidate in existing_candidates:
            self.register(candidate)

    def register(self, candidate: ExistingCandidate) -> None:
        """Add a candidate to the index. Earlier registrations win on collisions."""
        national_id = (candidate.national_id or "").strip()
        if national_id:
            self.by_national_id.setdefault(national_id, candidate)
        name = normalize_name(candidate.full_name)
        if name:
            self.by_name.setdefault(name, candidate)

    def find_match(self, incoming: CanonicalCandidate) -> Tuple[Optional[ExistingCandidate], Optional[MatchMethod]]:
        """
        Find the existing candidate for an incoming record.

        Args:
            incoming: Normalized incoming record

        Returns:
            Tuple of (matched candidate, method) or (None, None)
        """
        national_id = incoming.national_id.strip()
        if national_id and national_id in self.by_national_id:
            return self.by_national_id[national_id], MatchMethod.NATIONAL_ID

        name = normalize_name(incoming.full_name)
        if name and name in self.by_name:
            candidate = self.by_name[name]
            existing_id = (candidate.national_id or "").strip()
            if national_id and existing_id and existing_id != national_id:
                logger.info(
                    f"Name match for '{incoming.full_name}' rejected: national IDs differ"
                )
                return None, None
            return candidate, MatchMethod.NAME

        return None, None

    def resolve(self, incoming: CanonicalCandidate) -> Optional[ExistingCandidate]:
        match, _ = self.find_match(incoming)
        return match


def resolve_candidate(incoming: CanonicalCandidate,
                      existing_candidates: List[ExistingCandidate]) -> Optional[ExistingCandidate]:
    """
    Resolve one record against a candidate set.

    Args:
        incoming: Normalized incoming record
        existing_candidates: Candidates to match against

    Returns:
        Matching existing candidate, or None to signal a new candidate
    """
    return CandidateResolver(existing_candidates).resolve(incoming)
