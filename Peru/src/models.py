"""Data models for the Peru JNE candidate sync."""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .normalization import create_slug


class CandidateRole(str, Enum):
    """Role on the ballot. Values match the candidates.cargo column."""
    HEAD_OF_TICKET = "presidente"
    RUNNING_MATE = "vicepresidente"
    LEGISLATOR = "congresista"
    SUPRANATIONAL_LEGISLATOR = "parlamento_andino"


class SentenceStatus(str, Enum):
    """Procedural status of a sentence."""
    FINAL = "final"
    UNDER_APPEAL = "under_appeal"
    IN_PROCESS = "in_process"


class PenaltyKind(str, Enum):
    """Kind of criminal penalty imposed."""
    EFFECTIVE = "effective"
    SUSPENDED = "suspended"
    RESERVED_JUDGMENT = "reserved_judgment"


class CivilMatter(str, Enum):
    """Subject matter of a civil obligation sentence."""
    FAMILY_VIOLENCE = "family_violence"
    ALIMONY = "alimony"
    LABOR = "labor"
    CONTRACTUAL = "contractual"


class AffiliationKind(str, Enum):
    """How a candidate was affiliated with a party."""
    FULL_MEMBER = "full_member"
    ADHERENT = "adherent"
    SYMPATHIZER = "sympathizer"


class ReconcileOutcome(str, Enum):
    """Result of reconciling one incoming record."""
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"


class CategoryState(str, Enum):
    """Per-category state of a batch run."""
    NOT_STARTED = "not_started"
    LISTING_FETCHED = "listing_fetched"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CHECKPOINTED = "checkpointed"
    FAILED = "failed"


class MatchMethod(str, Enum):
    """How the resolver matched an incoming record."""
    NATIONAL_ID = "national_id"
    NAME = "name"


class EducationEntry(BaseModel):
    """One education record."""
    level: str
    institution: Optional[str] = None
    program: Optional[str] = None
    year: Optional[int] = None
    completed: Optional[bool] = None


class WorkExperienceEntry(BaseModel):
    """One employment record."""
    organization: str
    title: Optional[str] = None
    start_year: Optional[int] = None
    end_year: Optional[int] = None


class PoliticalTrajectoryEntry(BaseModel):
    """A party office or elected office held."""
    party: Optional[str] = None
    position: str
    start_year: Optional[int] = None
    end_year: Optional[int] = None
    elected: bool = False


class SentenceRecord(BaseModel):
    """Fields shared by criminal and civil sentences."""
    case_number: Optional[str] = None
    court: Optional[str] = None
    offense_or_matter: str
    sentence_date: Optional[date] = None
    penalty_description: Optional[str] = None
    status: SentenceStatus = SentenceStatus.IN_PROCESS


class CriminalSentence(SentenceRecord):
    """Criminal sentence."""
    penalty_kind: Optional[PenaltyKind] = None
    rehabilitated: Optional[bool] = None


class CivilSentence(SentenceRecord):
    """Civil obligation sentence."""
    matter: CivilMatter = CivilMatter.CONTRACTUAL
    amount_owed: Optional[Decimal] = None


class PartyResignation(BaseModel):
    """Resignation from a political party."""
    party_name: str
    affiliation_date: Optional[date] = None
    resignation_date: Optional[date] = None
    affiliation_kind: Optional[AffiliationKind] = None


class AssetDeclaration(BaseModel):
    """Sworn asset and income totals."""
    income_year: Optional[int] = None
    total_income: Optional[Decimal] = None
    real_estate_count: Optional[int] = None
    real_estate_total: Optional[Decimal] = None
    vehicle_count: Optional[int] = None
    vehicle_total: Optional[Decimal] = None
    total_assets: Optional[Decimal] = None
    total_liabilities: Optional[Decimal] = None


# Ordered from lowest to highest
EDUCATION_LEVELS = [
    "primaria",
    "secundaria",
    "tecnico",
    "no_universitaria",
    "universitaria",
    "maestria",
    "doctorado",
]


class CanonicalCandidate(BaseModel):
    """One portal observation of a candidate, normalized."""
    # Identity
    source_id: str = ""
    org_ref: Optional[str] = None
    person_ref: Optional[str] = None
    national_id: str = ""
    full_name: str = ""
    given_name: str = ""
    paternal_surname: str = ""
    maternal_surname: str = ""
    birth_date: Optional[date] = None

    # Classification
    role: CandidateRole
    region: Optional[str] = None
    list_position: Optional[int] = None

    # Affiliation
    party_name: Optional[str] = None
    party_short_name: Optional[str] = None

    # Media
    photo_url: Optional[str] = None
    bio_document_url: Optional[str] = None

    # Nested collections
    education: List[EducationEntry] = Field(default_factory=list)
    work_experience: List[WorkExperienceEntry] = Field(default_factory=list)
    political_trajectory: List[PoliticalTrajectoryEntry] = Field(default_factory=list)
    criminal_sentences: List[CriminalSentence] = Field(default_factory=list)
    civil_sentences: List[CivilSentence] = Field(default_factory=list)
    party_resignations: List[PartyResignation] = Field(default_factory=list)
    asset_declaration: Optional[AssetDeclaration] = None

    @property
    def slug(self) -> str:
        return create_slug(self.full_name)

    @property
    def highest_education_level(self) -> Optional[str]:
        """Highest recognized education level, if any."""
        ranks = [EDUCATION_LEVELS.index(e.level) for e in self.education if e.level in EDUCATION_LEVELS]
        return EDUCATION_LEVELS[max(ranks)] if ranks else None

    @property
    def reference(self) -> str:
        """Short identifier for log lines."""
        return self.person_ref or self.national_id or self.full_name or "?"

    def fingerprint_payload(self) -> Dict[str, Any]:
        """Every synced field, JSON-ready, without volatile metadata."""
        return self.model_dump(mode="json")

    def to_candidate_row(self, party_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Build a candidates-table row from this record.

        Args:
            party_id: Resolved party identifier

        Returns:
            Dictionary keyed by store column
        """
        data = self.model_dump(mode="json")
        return {
            "slug": self.slug,
            "full_name": self.full_name,
            "first_name": self.given_name,
            "paternal_surname": self.paternal_surname,
            "maternal_surname": self.maternal_surname,
            "dni": self.national_id,
            "birth_date": data["birth_date"],
            "cargo": self.role.value,
            "region": self.region,
            "list_position": self.list_position,
            "party_id": party_id,
            "photo_url": self.photo_url,
            "djhv_url": self.bio_document_url,
            "jne_id": self.person_ref,
            "jne_org_id": self.org_ref,
            "education_level": self.highest_education_level,
            "education_details": data["education"],
            "experience_details": data["work_experience"],
            "political_trajectory": data["political_trajectory"],
            "penal_sentences": data["criminal_sentences"],
            "civil_sentences": data["civil_sentences"],
            "party_resignation_details": data["party_resignations"],
            "party_resignations": len(self.party_resignations),
            "assets_declaration": data["asset_declaration"],
        }


class ExistingCandidate(BaseModel):
    """Subset of a stored candidate row needed for matching."""
    id: str
    national_id: Optional[str] = None
    full_name: str = ""
    role: Optional[str] = None
    party_id: Optional[str] = None
    slug: Optional[str] = None


class DataFingerprint(BaseModel):
    """Last content hash seen for (entity_type, entity_id, source)."""
    entity_type: str = "candidate"
    entity_id: str
    source: str
    data_hash: str
    last_checked_at: datetime
    last_changed_at: datetime


class ReconcileResult(BaseModel):
    """Outcome of one reconcile plus the candidate it touched."""
    outcome: ReconcileOutcome
    candidate_id: str


class Checkpoint(BaseModel):
    """Resumption point for one listing category."""
    category: str
    remaining_items: List[CanonicalCandidate] = Field(default_factory=list)
    processed_count: int = 0
    failed_refs: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class CategoryStatistics(BaseModel):
    """Counters for one category."""
    category: str
    state: CategoryState = CategoryState.NOT_STARTED
    resumed: bool = False
    listed: int = 0
    processed: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    dropped: int = 0
    fetch_failures: int = 0
    errors: int = 0
    name_only_matches: int = 0


class RunStatistics(BaseModel):
    """Statistics for a whole sync run."""
    categories: List[CategoryStatistics] = Field(default_factory=list)
    checkpointed_categories: List[str] = Field(default_factory=list)
    review_candidates: List[Dict[str, str]] = Field(default_factory=list)
    cancelled: bool = False
    fatal_error: Optional[str] = None
    processing_time_seconds: float = 0
    dry_run: bool = False

    def total(self, counter: str) -> int:
        return sum(getattr(c, counter) for c in self.categories)
