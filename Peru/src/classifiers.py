"""Closed classifiers for free-text portal fields.

Every classifier is total: it always returns a member of its enumeration
(or None where the field is optional), falling back to the least alarming
value when the text is ambiguous.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from .models import (
    AffiliationKind,
    CandidateRole,
    CivilMatter,
    PenaltyKind,
    SentenceStatus,
)
from .normalization import strip_accents

_CURRENCY_MARKERS = re.compile(r"(S/\.?|PEN|USD|US\$|\$)", re.IGNORECASE)
_YEAR = re.compile(r"(19|20)\d{2}")
_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%Y-%m-%d", "%Y/%m/%d")


def _fold(text: Optional[str]) -> str:
    return strip_accents(text or "").lower()


def _contains_any(text: str, keywords) -> bool:
    return any(keyword in text for keyword in keywords)


def classify_sentence_status(text: Optional[str]) -> SentenceStatus:
    """
    Classify a sentence status.

    "Sentencia consentida y ejecutoriada" is final, "en apelación" is under
    appeal, anything else (including empty text) is in process.
    """
    folded = _fold(text)
    if _contains_any(folded, ("firme", "consentida", "ejecutoriada", "final", "consented", "executed")):
        return SentenceStatus.FINAL
    if _contains_any(folded, ("apela", "recurso", "appeal", "recourse")):
        return SentenceStatus.UNDER_APPEAL
    return SentenceStatus.IN_PROCESS


def classify_penalty_kind(text: Optional[str]) -> Optional[PenaltyKind]:
    """
    Classify a criminal penalty description.

    A suspended custodial penalty ("privativa de libertad suspendida") is
    classified as suspended.
    """
    folded = _fold(text)
    if _contains_any(folded, ("suspendid", "condicional", "suspended", "conditional")):
        return PenaltyKind.SUSPENDED
    if _contains_any(folded, ("reserva", "reserved")):
        return PenaltyKind.RESERVED_JUDGMENT
    if _contains_any(folded, ("efectiva", "privativa", "effective", "custodial")):
        return PenaltyKind.EFFECTIVE
    return None


def classify_civil_matter(text: Optional[str]) -> CivilMatter:
    """Classify the matter of a civil sentence, contractual by default."""
    folded = _fold(text)
    if _contains_any(folded, ("violencia", "familiar", "family violence")):
        return CivilMatter.FAMILY_VIOLENCE
    if _contains_any(folded, ("alimento", "alimony")):
        return CivilMatter.ALIMONY
    if _contains_any(folded, ("laboral", "trabajo", "labor")):
        return CivilMatter.LABOR
    return CivilMatter.CONTRACTUAL


def classify_affiliation(text: Optional[str]) -> Optional[AffiliationKind]:
    """Classify a party affiliation type."""
    folded = _fold(text)
    if _contains_any(folded, ("militante", "afiliado", "member")):
        return AffiliationKind.FULL_MEMBER
    if _contains_any(folded, ("adherente", "adherent")):
        return AffiliationKind.ADHERENT
    if _contains_any(folded, ("simpatizante", "sympathizer")):
        return AffiliationKind.SYMPATHIZER
    return None


def classify_role(text: Optional[str], default: CandidateRole) -> CandidateRole:
    """
    Map a cargo label to a role.

    Args:
        text: Cargo text from the portal, e.g. "PRIMER VICEPRESIDENTE"
        default: Role assumed from the listing category

    Returns:
        Candidate role
    """
    folded = _fold(text)
    if "vice" in folded:
        return CandidateRole.RUNNING_MATE
    if "presidente" in folded or "president" in folded:
        return CandidateRole.HEAD_OF_TICKET
    if "andino" in folded or "parlamento" in folded:
        return CandidateRole.SUPRANATIONAL_LEGISLATOR
    if _contains_any(folded, ("senador", "diputado", "congres")):
        return CandidateRole.LEGISLATOR
    return default


def parse_amount(value) -> Optional[Decimal]:
    """
    Parse a monetary amount such as "S/. 12,500.00".

    Returns None (never zero) when the value cannot be parsed.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        amount = Decimal(str(value))
        return amount if amount.is_finite() else None
    text = _CURRENCY_MARKERS.sub("", str(value)).replace(",", "").replace(" ", "").strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


def parse_year(value) -> Optional[int]:
    """Extract a four digit year from a value like '2015' or '03/2015'."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if 1900 <= value <= 2100 else None
    match = _YEAR.search(str(value))
    return int(match.group(0)) if match else None


def parse_date(value) -> Optional[date]:
    """Parse dd/mm/yyyy, dd-mm-yyyy or ISO dates. Unparseable values are None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    # ISO timestamps: keep the date part
    if "T" in text:
        text = text.split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def parse_flag(value) -> Optional[bool]:
    """Interpret yes/no style values ("SI", "1", True)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    folded = _fold(str(value)).strip()
    if folded in ("si", "s", "1", "true", "yes"):
        return True
    if folded in ("no", "n", "0", "false"):
        return False
    return None


def classify_education_level(text: Optional[str]) -> str:
    """Map an education block or degree label to a level key."""
    folded = _fold(text)
    if "doctor" in folded:
        return "doctorado"
    if _contains_any(folded, ("maestr", "magister", "master", "posgrado", "postgrado")):
        return "maestria"
    if _contains_any(folded, ("universit", "bachiller", "licenciad")) and "no universit" not in folded:
        return "universitaria"
    if "no universit" in folded:
        return "no_universitaria"
    if "tecnic" in folded:
        return "tecnico"
    if "secundaria" in folded:
        return "secundaria"
    if "primaria" in folded:
        return "primaria"
    return folded.strip() or "otro"
