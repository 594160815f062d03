"""Tests for the closed free-text classifiers and value parsers."""

from datetime import date
from decimal import Decimal

import pytest

from Peru.src.classifiers import (
    classify_affiliation,
    classify_civil_matter,
    classify_education_level,
    classify_penalty_kind,
    classify_role,
    classify_sentence_status,
    parse_amount,
    parse_date,
    parse_flag,
    parse_year,
)
from Peru.src.models import (
    AffiliationKind,
    CandidateRole,
    CivilMatter,
    PenaltyKind,
    SentenceStatus,
)


@pytest.mark.unit
@pytest.mark.parametrize("text, expected", [
    ("Sentencia consentida y ejecutoriada", SentenceStatus.FINAL),
    ("FIRME", SentenceStatus.FINAL),
    ("en apelación", SentenceStatus.UNDER_APPEAL),
    ("Recurso de nulidad pendiente", SentenceStatus.UNDER_APPEAL),
    ("", SentenceStatus.IN_PROCESS),
    (None, SentenceStatus.IN_PROCESS),
    ("en trámite", SentenceStatus.IN_PROCESS),
])
def test_sentence_status(text, expected):
    assert classify_sentence_status(text) == expected


@pytest.mark.unit
@pytest.mark.parametrize("text, expected", [
    ("Pena privativa de libertad efectiva", PenaltyKind.EFFECTIVE),
    ("Pena privativa de libertad suspendida", PenaltyKind.SUSPENDED),
    ("Condicional por 2 años", PenaltyKind.SUSPENDED),
    ("Reserva del fallo condenatorio", PenaltyKind.RESERVED_JUDGMENT),
    ("Multa", None),
    ("", None),
])
def test_penalty_kind(text, expected):
    assert classify_penalty_kind(text) == expected


@pytest.mark.unit
@pytest.mark.parametrize("text, expected", [
    ("Violencia familiar", CivilMatter.FAMILY_VIOLENCE),
    ("Pensión de alimentos", CivilMatter.ALIMONY),
    ("Beneficios laborales", CivilMatter.LABOR),
    ("Obligación de dar suma de dinero", CivilMatter.CONTRACTUAL),
    ("", CivilMatter.CONTRACTUAL),
])
def test_civil_matter(text, expected):
    assert classify_civil_matter(text) == expected


@pytest.mark.unit
def test_affiliation_kind():
    assert classify_affiliation("MILITANTE") == AffiliationKind.FULL_MEMBER
    assert classify_affiliation("Adherente") == AffiliationKind.ADHERENT
    assert classify_affiliation("simpatizante") == AffiliationKind.SYMPATHIZER
    assert classify_affiliation("") is None


@pytest.mark.unit
def test_role_from_cargo_text():
    default = CandidateRole.LEGISLATOR
    assert classify_role("PRIMER VICEPRESIDENTE DE LA REPÚBLICA", default) == CandidateRole.RUNNING_MATE
    assert classify_role("PRESIDENTE DE LA REPÚBLICA", default) == CandidateRole.HEAD_OF_TICKET
    assert classify_role("REPRESENTANTE ANTE EL PARLAMENTO ANDINO", default) == \
        CandidateRole.SUPRANATIONAL_LEGISLATOR
    assert classify_role("SENADOR", CandidateRole.HEAD_OF_TICKET) == CandidateRole.LEGISLATOR
    assert classify_role("", CandidateRole.SUPRANATIONAL_LEGISLATOR) == CandidateRole.SUPRANATIONAL_LEGISLATOR


@pytest.mark.unit
def test_amount_strips_currency_and_thousands():
    assert parse_amount("S/. 12,500.00") == Decimal("12500.00")
    assert parse_amount("S/ 300") == Decimal("300")
    assert parse_amount(1500) == Decimal("1500")


@pytest.mark.unit
def test_amount_unparseable_is_absent_not_zero():
    assert parse_amount("no indica") is None
    assert parse_amount("") is None
    assert parse_amount(None) is None
    assert parse_amount("0") == Decimal("0")


@pytest.mark.unit
def test_dates_and_years():
    assert parse_date("15/03/1970") == date(1970, 3, 15)
    assert parse_date("1970-03-15T00:00:00") == date(1970, 3, 15)
    assert parse_date("sin fecha") is None
    assert parse_year("03/2015") == 2015
    assert parse_year("") is None


@pytest.mark.unit
def test_flags():
    assert parse_flag("SI") is True
    assert parse_flag("1") is True
    assert parse_flag("NO") is False
    assert parse_flag("quizás") is None


@pytest.mark.unit
def test_education_level_labels():
    assert classify_education_level("Maestría") == "maestria"
    assert classify_education_level("UNIVERSITARIO") == "universitaria"
    assert classify_education_level("No Universitaria") == "no_universitaria"
    assert classify_education_level("Secundaria completa") == "secundaria"
