"""Tests for turning raw portal payloads into canonical candidates."""

from datetime import date
from decimal import Decimal
import logging

import pytest

from Peru.src.config import PHOTO_BASE_URL, PORTAL_BASE_URL
from Peru.src.models import (
    AffiliationKind,
    CandidateRole,
    CivilMatter,
    PenaltyKind,
    SentenceStatus,
)
from Peru.src.transformer import (
    find_item_list,
    first_value,
    key,
    parse_detail,
    parse_list_item,
    parse_listing_payload,
    unwrap_detail_payload,
)

from conftest import make_listing_item


@pytest.mark.unit
def test_first_present_alias_wins():
    raw = {"strNombreCompleto": "", "nombreCompleto": "Ana Torres Vega"}
    assert first_value(raw, [key("strNombreCompleto", "nombreCompleto")]) == "Ana Torres Vega"


@pytest.mark.unit
def test_list_item_uses_priority_order():
    raw = {
        "idHojaVida": 991,
        "idOrganizacionPolitica": 14,
        "strDocumentoIdentidad": "44556677",
        "strNombreCompleto": "TORRES VEGA ANA LUCIA",
        "nombre": "ignored alias",
        "strOrganizacionPolitica": "FUERZA NORTE",
        "intPosicion": "3",
        "strFoto": "/fotos/991.jpg",
    }
    record = parse_list_item(raw, CandidateRole.LEGISLATOR)

    assert record.full_name == "Torres Vega Ana Lucia"
    assert record.paternal_surname == "Torres"
    assert record.maternal_surname == "Vega"
    assert record.given_name == "Ana Lucia"
    assert record.national_id == "44556677"
    assert record.person_ref == "991"
    assert record.org_ref == "14"
    assert record.source_id == "991"
    assert record.list_position == 3
    assert record.party_name == "FUERZA NORTE"
    assert record.photo_url == PORTAL_BASE_URL + "/fotos/991.jpg"
    assert record.role == CandidateRole.LEGISLATOR


@pytest.mark.unit
def test_name_built_from_parts_when_full_name_missing():
    raw = {"strApellidoPaterno": "RAMOS", "strApellidoMaterno": "SOTO", "strNombres": "LUIS"}
    record = parse_list_item(raw)
    assert record.full_name == "Ramos Soto Luis"


@pytest.mark.unit
def test_photo_from_guid():
    raw = {"strNombreCompleto": "Ramos Soto Luis", "strGuidFoto": "abc-123"}
    record = parse_list_item(raw)
    assert record.photo_url == f"{PHOTO_BASE_URL}/abc-123.jpg"


@pytest.mark.unit
def test_record_without_name_or_national_id_is_dropped(caplog):
    with caplog.at_level(logging.WARNING):
        assert parse_list_item({"idHojaVida": 5, "strOrganizacionPolitica": "X"}) is None
    assert "Dropping record without name or national ID" in caplog.text


@pytest.mark.unit
def test_file_name_is_not_a_person_name():
    assert parse_list_item({"strNombreCompleto": "foto_candidato.jpg"}) is None


@pytest.mark.unit
def test_national_id_alone_identifies_a_record():
    record = parse_list_item({"strDocumentoIdentidad": "12345678"})
    assert record is not None
    assert record.full_name == ""
    assert record.source_id == "12345678"


@pytest.mark.unit
def test_cargo_overrides_category_role():
    raw = {"strNombreCompleto": "Vega Ruiz Pedro", "strCargo": "SEGUNDO VICEPRESIDENTE"}
    assert parse_list_item(raw, CandidateRole.HEAD_OF_TICKET).role == CandidateRole.RUNNING_MATE


@pytest.mark.unit
def test_find_item_list_descends_into_envelopes():
    assert find_item_list([{"a": 1}]) == [{"a": 1}]
    assert find_item_list({"data": {"lista": [{"a": 1}]}}) == [{"a": 1}]
    assert find_item_list({"unrelated": []}) == []


@pytest.mark.unit
def test_presidential_formula_expands_into_ticket_members():
    payload = {
        "data": [
            {
                "strOrganizacionPolitica": "PARTIDO SOL",
                "idOrganizacionPolitica": 7,
                "presidente": {"idHojaVida": 1, "strNombreCompleto": "SALAS PEÑA JORGE"},
                "vicepresidentes": [
                    {"idHojaVida": 2, "strNombreCompleto": "LOPEZ DIAZ MARTA"},
                    {"idHojaVida": 3, "strNombreCompleto": "CHAVEZ ROJAS RAUL"},
                ],
            }
        ]
    }
    records = parse_listing_payload(payload, CandidateRole.HEAD_OF_TICKET)

    assert [r.person_ref for r in records] == ["1", "2", "3"]
    assert [r.role for r in records] == [
        CandidateRole.HEAD_OF_TICKET, CandidateRole.RUNNING_MATE, CandidateRole.RUNNING_MATE]
    assert all(r.party_name == "PARTIDO SOL" and r.org_ref == "7" for r in records)


@pytest.mark.unit
def test_listing_payload_skips_unidentifiable_items():
    payload = {"candidatos": [{"strNombreCompleto": "Diaz Mora Eva"}, {"idHojaVida": 9}, "junk"]}
    records = parse_listing_payload(payload, CandidateRole.LEGISLATOR)
    assert [r.full_name for r in records] == ["Diaz Mora Eva"]


@pytest.mark.unit
def test_unwrap_detail_payload():
    assert unwrap_detail_payload({"data": {"x": 1}, "success": True}) == {"x": 1}
    assert unwrap_detail_payload({"x": 1}) == {"x": 1}
    assert unwrap_detail_payload(None) == {}


@pytest.mark.unit
def test_consolidated_detail_identity(consolidated_detail):
    record = parse_detail(consolidated_detail, CandidateRole.LEGISLATOR, "1257", "135790")

    assert record.full_name == "Quispe Mamani Rosa Elena"
    assert record.national_id == "10203040"
    assert record.birth_date == date(1970, 3, 15)
    assert record.region == "CUSCO"
    assert record.party_name == "PARTIDO DEMOCRATICO ANDINO"
    assert record.source_id == "135790"
    assert record.bio_document_url == PORTAL_BASE_URL + "/hoja-vida/1257/135790"


@pytest.mark.unit
def test_consolidated_detail_collections(consolidated_detail):
    record = parse_detail(consolidated_detail, CandidateRole.LEGISLATOR, "1257", "135790")

    assert [e.level for e in record.education] == ["primaria", "secundaria", "universitaria", "maestria"]
    assert record.highest_education_level == "maestria"
    assert record.education[2].year == 1996
    assert record.education[3].completed is False

    assert record.work_experience[0].organization == "MUNICIPALIDAD PROVINCIAL DEL CUSCO"
    assert record.work_experience[0].start_year == 2010
    assert [t.elected for t in record.political_trajectory] == [False, True]

    criminal = record.criminal_sentences[0]
    assert criminal.offense_or_matter == "USURPACION"
    assert criminal.penalty_kind == PenaltyKind.SUSPENDED
    assert criminal.status == SentenceStatus.FINAL

    civil = record.civil_sentences[0]
    assert civil.matter == CivilMatter.ALIMONY
    assert civil.amount_owed == Decimal("1500.50")
    assert civil.status == SentenceStatus.UNDER_APPEAL

    resignation = record.party_resignations[0]
    assert resignation.party_name == "ALIANZA PARA EL PROGRESO"
    assert resignation.resignation_date == date(2014, 2, 1)
    assert resignation.affiliation_kind == AffiliationKind.FULL_MEMBER

    assets = record.asset_declaration
    assert assets.income_year == 2024
    assert assets.total_income == Decimal("1500.00")
    assert assets.real_estate_count == 2
    assert assets.real_estate_total == Decimal("150000")
    assert assets.vehicle_count == 1


@pytest.mark.unit
def test_detail_keeps_listing_role():
    raw = {"strNombreCompleto": "Vega Ruiz Pedro", "strCargo": "DIPUTADO"}
    record = parse_detail(raw, CandidateRole.RUNNING_MATE, "7", "2")
    assert record.role == CandidateRole.RUNNING_MATE


@pytest.mark.unit
def test_detail_without_identity_falls_back_to_listing():
    listing = make_listing_item("77", "Flores Cano Julio", national_id="87654321", party_name="PARTIDO SOL")
    raw = {
        "sentenciasPenales": [
            {"strExpediente": "001-2019", "strDelito": "PECULADO", "strPena": "Pena efectiva"},
        ],
    }
    record = parse_detail(raw, CandidateRole.LEGISLATOR, "10", "77", listing=listing)

    assert record is not None
    assert record.full_name == "Flores Cano Julio"
    assert record.national_id == "87654321"
    assert record.party_name == "PARTIDO SOL"
    assert record.criminal_sentences[0].penalty_kind == PenaltyKind.EFFECTIVE


@pytest.mark.unit
def test_detail_without_identity_and_no_listing_is_dropped():
    assert parse_detail({"sentenciasPenales": []}, CandidateRole.LEGISLATOR, "10", "77") is None


@pytest.mark.unit
def test_legacy_sentence_without_offense_or_case_is_ignored():
    raw = {
        "strNombreCompleto": "Flores Cano Julio",
        "sentenciasCiviles": [{"monto": "500"}, {"strExpediente": "22-2020", "strMateria": "Deuda"}],
    }
    record = parse_detail(raw, CandidateRole.LEGISLATOR, None, None)
    assert len(record.civil_sentences) == 1
    assert record.civil_sentences[0].matter == CivilMatter.CONTRACTUAL
    assert record.civil_sentences[0].amount_owed is None
    assert record.bio_document_url is None
