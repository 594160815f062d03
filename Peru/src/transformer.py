"""Transform raw JNE portal payloads into canonical candidate records.

The portal serves the same facts under different field names depending on
the view (listing, consolidated detail, legacy detail, DOM extraction).
Each canonical field therefore has a priority-ordered list of extractors;
the first one that yields a non-empty value wins.
"""

from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .classifiers import (
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
from .config import DETAIL_PATH_TEMPLATE, PHOTO_BASE_URL, PORTAL_BASE_URL, setup_logging
from .models import (
    AssetDeclaration,
    CandidateRole,
    CanonicalCandidate,
    CivilSentence,
    CriminalSentence,
    EducationEntry,
    PartyResignation,
    PoliticalTrajectoryEntry,
    WorkExperienceEntry,
)
from .normalization import clean_text, split_full_name, title_case_name

logger = setup_logging(__name__)

Extractor = Callable[[Mapping], Any]

MIN_NAME_LENGTH = 4
_FILE_SUFFIXES = (".jpg", ".jpeg", ".png", ".gif", ".pdf")


def is_present(value: Any) -> bool:
    """True for values that count as data (not None, blank, or empty)."""
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, dict)):
        return len(value) > 0
    return True


def key(*names: str) -> Extractor:
    """Extractor returning the first present top-level key."""
    def extract(raw: Mapping) -> Any:
        for name in names:
            value = raw.get(name)
            if is_present(value):
                return value
        return None
    return extract


def nested(container: str, *names: str) -> Extractor:
    """Extractor looking inside a nested object, e.g. oDatosPersonales."""
    inner = key(*names)

    def extract(raw: Mapping) -> Any:
        child = raw.get(container)
        return inner(child) if isinstance(child, Mapping) else None
    return extract


def personal(*names: str) -> List[Extractor]:
    """Extractors for the personal-data block of consolidated detail payloads."""
    return [nested("oDatosPersonales", *names), nested("datosPersonales", *names)]


def first_value(raw: Mapping, extractors: Iterable[Extractor]) -> Any:
    """Run extractors in order and return the first present value."""
    for extract in extractors:
        value = extract(raw)
        if is_present(value):
            return value
    return None


def photo_from_guid(raw: Mapping) -> Optional[str]:
    guid = first_value(raw, [key("strGuidFoto"), *personal("strGuidFoto")])
    return f"{PHOTO_BASE_URL}/{guid}.jpg" if guid else None


FIELD_EXTRACTORS: Dict[str, List[Extractor]] = {
    "person_ref": [key("idHojaVida", "intIdHojaVida", "idCandidato"), *personal("idHojaVida")],
    "org_ref": [key("idOrganizacionPolitica", "intIdOrganizacionPolitica", "idOP"),
                *personal("idOrganizacionPolitica")],
    "national_id": [key("strDocumentoIdentidad", "strDNI", "strDni", "dni"),
                    *personal("strDocumentoIdentidad", "strDNI", "dni")],
    "full_name": [key("strNombreCompleto", "nombreCompleto", "strCandidato", "nombre"),
                  *personal("strNombreCompleto")],
    "given_name": [key("strNombres", "nombres"), *personal("strNombres")],
    "paternal_surname": [key("strApellidoPaterno", "apellidoPaterno"), *personal("strApellidoPaterno")],
    "maternal_surname": [key("strApellidoMaterno", "apellidoMaterno"), *personal("strApellidoMaterno")],
    "birth_date": [key("strFechaNacimiento", "dteFechaNacimiento", "fechaNacimiento"),
                   *personal("strFechaNacimiento", "dteFechaNacimiento")],
    "cargo": [key("strCargo", "strCargoPostula", "cargo"), *personal("strCargoPostula", "strCargo")],
    "region": [key("strDistrito", "strDepartamento", "region", "departamento"),
               *personal("strPostulaDistrito", "strDistrito")],
    "party_name": [key("strOrganizacionPolitica", "organizacionPolitica", "partido"),
                   *personal("strOrganizacionPolitica")],
    "party_short_name": [key("strSiglas", "siglas")],
    "photo_url": [key("strFoto", "urlFoto", "foto"), photo_from_guid],
    "list_position": [key("intPosicion", "posicion", "numero")],
    "bio_document_url": [key("strUrlHojaVida", "urlHojaVida")],
}


def _text(value: Any) -> str:
    return clean_text(value) if is_present(value) else ""


def _optional_text(value: Any) -> Optional[str]:
    return _text(value) or None


def _ref(value: Any) -> Optional[str]:
    """Portal ids arrive as ints or strings; 0 means missing."""
    text = _text(value)
    if not text or text == "0":
        return None
    return text[:-2] if text.endswith(".0") else text


def _int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _absolute_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    if url.startswith("//"):
        return "https:" + url
    if url.startswith("/"):
        return PORTAL_BASE_URL + url
    return url


def _looks_like_file(text: str) -> bool:
    return text.lower().endswith(_FILE_SUFFIXES)


def _dicts(raw: Mapping, *names: str) -> List[Mapping]:
    """List of mapping items under the first present key."""
    value = key(*names)(raw)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, Mapping)]


# ---------------------------------------------------------------------------
# Nested collections
# ---------------------------------------------------------------------------

def _is_yes(value: Any) -> bool:
    return parse_flag(value) is True


def _consolidated_education(raw: Mapping) -> List[EducationEntry]:
    entries: List[EducationEntry] = []

    basic = raw.get("oEduBasica")
    if isinstance(basic, Mapping):
        if _is_yes(basic.get("strEduPrimaria")):
            entries.append(EducationEntry(level="primaria", program="Educación Primaria",
                                          completed=_is_yes(basic.get("strConcluidoEduPrimaria"))))
        if _is_yes(basic.get("strEduSecundaria")):
            entries.append(EducationEntry(level="secundaria", program="Educación Secundaria",
                                          completed=_is_yes(basic.get("strConcluidoEduSecundaria"))))

    technical = raw.get("oEduTecnico")
    if isinstance(technical, Mapping) and (
            _is_yes(technical.get("strEduTecnico")) or _is_yes(technical.get("strTengoEduTecnico"))):
        entries.append(EducationEntry(
            level="tecnico",
            institution=_optional_text(technical.get("strCenEstudioTecnico")),
            program=_optional_text(technical.get("strCarreraTecnico")),
            completed=_is_yes(technical.get("strConcluidoEduTecnico")),
        ))

    non_university = raw.get("oEduNoUniversitaria")
    if isinstance(non_university, Mapping) and (
            _is_yes(non_university.get("strEduNoUniversitaria"))
            or _is_yes(non_university.get("strTengoEduNoUniversitaria"))):
        entries.append(EducationEntry(
            level="no_universitaria",
            institution=_optional_text(non_university.get("strCenEstudioNoUni")),
            program=_optional_text(non_university.get("strCarreraNoUni")),
            completed=_is_yes(non_university.get("strConcluidoEduNoUni")),
        ))

    for item in _dicts(raw, "lEduUniversitaria"):
        entries.append(EducationEntry(
            level="universitaria",
            institution=_optional_text(item.get("strUniversidad")),
            program=_optional_text(item.get("strCarreraUni")),
            year=parse_year(item.get("strAnioTitulo") or item.get("strAnioBachiller")),
            completed=_is_yes(item.get("strConcluidoEduUni")),
        ))

    for item in _dicts(raw, "lEduPosgrado"):
        level = "doctorado" if _is_yes(item.get("strEsDoctor")) else "maestria"
        entries.append(EducationEntry(
            level=level,
            institution=_optional_text(item.get("strCenEstudioPosgrado")),
            program=_optional_text(item.get("strEspecialidadPosgrado")),
            year=parse_year(item.get("strAnioPosgrado")),
            completed=_is_yes(item.get("strConcluidoPosgrado")),
        ))

    return [e for e in entries if e.level or e.institution or e.program]


def _legacy_education(raw: Mapping) -> List[EducationEntry]:
    entries = []
    for item in _dicts(raw, "educacion", "lstEducacion", "formacionAcademica"):
        institution = _optional_text(key("strCentroEstudio", "institucion", "centro")(item))
        program = _optional_text(key("strCarrera", "strEspecialidad", "carrera")(item))
        level_text = _text(key("strNivelEstudio", "nivel")(item))
        if not (level_text or institution or program):
            continue
        completed = item.get("blnConcluido")
        entries.append(EducationEntry(
            level=classify_education_level(level_text or program),
            institution=institution,
            program=program,
            year=parse_year(key("intAnioEstudio", "intAnioFin", "anio")(item)),
            completed=None if completed is None else parse_flag(completed),
        ))
    return entries


def _work_experience(raw: Mapping) -> List[WorkExperienceEntry]:
    entries = []
    for item in _dicts(raw, "lExperienciaLaboral", "experiencia", "lstExperiencia"):
        organization = _text(key("strCentroTrabajo", "entidad", "empresa")(item))
        title = _optional_text(key("strOcupacionProfesion", "strOcupacion", "cargo", "puesto")(item))
        if not organization and not title:
            continue
        entries.append(WorkExperienceEntry(
            organization=organization,
            title=title,
            start_year=parse_year(key("strAnioTrabajoDesde", "intAnioInicio")(item)),
            end_year=parse_year(key("strAnioTrabajoHasta", "intAnioFin")(item)),
        ))
    return entries


def _political_trajectory(raw: Mapping) -> List[PoliticalTrajectoryEntry]:
    entries = []
    for item in _dicts(raw, "lCargoPartidario"):
        entries.append(PoliticalTrajectoryEntry(
            party=_optional_text(item.get("strOrgPolCargoPartidario")),
            position=_text(item.get("strCargoPartidario")),
            start_year=parse_year(item.get("strAnioCargoPartiDesde")),
            end_year=parse_year(item.get("strAnioCargoPartiHasta")),
            elected=False,
        ))
    for item in _dicts(raw, "lCargoEleccion"):
        entries.append(PoliticalTrajectoryEntry(
            party=_optional_text(item.get("strOrgPolCargoElec")),
            position=_text(item.get("strCargoEleccion")),
            start_year=parse_year(item.get("strAnioCargoElecDesde")),
            end_year=parse_year(item.get("strAnioCargoElecHasta")),
            elected=True,
        ))
    for item in _dicts(raw, "trayectoriaPolitica", "lstTrayectoria"):
        kind = _text(key("strTipo", "tipo")(item)).lower()
        entries.append(PoliticalTrajectoryEntry(
            party=_optional_text(key("strPartido", "partido")(item)),
            position=_text(key("strCargo", "cargo")(item)),
            start_year=parse_year(key("intAnioInicio", "anioInicio")(item)),
            end_year=parse_year(key("intAnioFin", "anioFin")(item)),
            elected=item.get("blnElecto") is True or "electo" in kind,
        ))
    return [e for e in entries if e.party or e.position]


def _criminal_sentences(raw: Mapping) -> List[CriminalSentence]:
    sentences = []
    for item in _dicts(raw, "lSentenciaPenal", "sentenciasPenales", "lstSentenciasPenales"):
        offense = _text(key("strDelito", "delito", "strTipoDelito")(item))
        case_number = _optional_text(key("strExpedientePenal", "strExpediente", "expediente")(item))
        if not offense and not case_number:
            continue
        penalty = _optional_text(key("strPena", "pena", "strFallo")(item))
        modality = _text(key("strModalidad", "modalidad")(item))
        sentences.append(CriminalSentence(
            case_number=case_number,
            court=_optional_text(key("strJuzgadoPenal", "strJuzgado", "juzgado")(item)),
            offense_or_matter=offense,
            sentence_date=parse_date(key("dteFechaSentencia", "strFechaSentenciaPenal", "fechaSentencia")(item)),
            penalty_description=penalty,
            penalty_kind=classify_penalty_kind(" ".join(filter(None, [penalty, modality]))),
            status=classify_sentence_status(
                _text(key("strEstado", "estado", "strEstadoSentencia", "strCumplimientoPena")(item))),
            rehabilitated=parse_flag(key("blnRehabilitado", "strRehabilitado")(item)),
        ))
    return sentences


def _civil_sentences(raw: Mapping) -> List[CivilSentence]:
    sentences = []
    for item in _dicts(raw, "lSentenciaObliga", "sentenciasCiviles", "lstSentenciasCiviles"):
        matter = _text(key("strMateria", "descripcion", "strDescripcion")(item))
        case_number = _optional_text(key("strExpedienteObliga", "strExpediente", "expediente")(item))
        if not matter and not case_number:
            continue
        kind_text = _text(key("strTipo", "tipo", "strMateria")(item))
        sentences.append(CivilSentence(
            case_number=case_number,
            court=_optional_text(key("strJuzgadoObliga", "strJuzgado", "juzgado")(item)),
            offense_or_matter=matter,
            sentence_date=parse_date(key("dteFechaSentencia", "fechaSentencia")(item)),
            penalty_description=_optional_text(key("strFalloObliga", "strFallo", "fallo")(item)),
            matter=classify_civil_matter(" ".join(filter(None, [kind_text, matter]))),
            amount_owed=parse_amount(key("decMontoObliga", "decMonto", "monto")(item)),
            status=classify_sentence_status(_text(key("strEstadoObliga", "strEstado", "estado")(item))),
        ))
    return sentences


def _party_resignations(raw: Mapping) -> List[PartyResignation]:
    resignations = []
    for item in _dicts(raw, "lRenunciaOP", "renuncias", "lstRenuncias"):
        party = _text(key("strOrgPolRenunciaOP", "strOrganizacionPolitica", "strPartido", "partido")(item))
        if not party:
            continue
        resignations.append(PartyResignation(
            party_name=party,
            affiliation_date=parse_date(key("dteFechaAfiliacion", "strFechaAfiliacion")(item)),
            resignation_date=parse_date(key("dteFechaRenuncia", "strFechaRenuncia", "strAnioRenunciaOP")(item)),
            affiliation_kind=classify_affiliation(_text(key("strTipoAfiliacion", "tipo")(item))),
        ))
    return resignations


def _sum_amounts(values: Iterable[Any]):
    amounts = [a for a in (parse_amount(v) for v in values) if a is not None]
    return sum(amounts) if amounts else None


def _asset_declaration(raw: Mapping) -> Optional[AssetDeclaration]:
    income = raw.get("oIngresos")
    real_estate = _dicts(raw, "lBienInmueble")
    movable = _dicts(raw, "lBienMueble")
    if isinstance(income, Mapping) or real_estate or movable:
        declaration = AssetDeclaration()
        if isinstance(income, Mapping):
            declaration.total_income = _sum_amounts(income.get(field) for field in (
                "decRemuBrutaPublico", "decRemuBrutaPrivado",
                "decRentaIndividualPublico", "decRentaIndividualPrivado",
                "decOtroIngresoPublico", "decOtroIngresoPrivado",
            ))
            declaration.income_year = parse_year(income.get("strAnioIngresos"))
        if real_estate:
            declaration.real_estate_count = len(real_estate)
            declaration.real_estate_total = _sum_amounts(
                key("decAutovaluo", "decValor")(b) for b in real_estate)
        if movable:
            declaration.vehicle_count = len(movable)
            declaration.vehicle_total = _sum_amounts(b.get("decValor") for b in movable)
        if any(v is not None for v in declaration.model_dump().values()):
            return declaration
        return None

    legacy = key("bienes", "declaracionBienes")(raw)
    if isinstance(legacy, Mapping):
        declaration = AssetDeclaration(
            total_assets=parse_amount(legacy.get("decTotalBienes")),
            total_income=parse_amount(legacy.get("decIngresoTotal")),
            real_estate_count=_int(legacy.get("intCantidadInmuebles")),
            vehicle_count=_int(legacy.get("intCantidadVehiculos")),
            total_liabilities=parse_amount(legacy.get("decTotalDeudas")),
        )
        if any(v is not None for v in declaration.model_dump().values()):
            return declaration
    return None


EDUCATION_EXTRACTORS: List[Callable[[Mapping], list]] = [_consolidated_education, _legacy_education]


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

_FALLBACK_FIELDS = (
    "region", "list_position", "party_name", "party_short_name", "photo_url", "birth_date",
)


def _parse_record(raw: Mapping, default_role: CandidateRole,
                  fallback: Optional[CanonicalCandidate] = None) -> Optional[CanonicalCandidate]:
    """
    Build a canonical record from a raw payload.

    Identity fields missing from the payload are taken from the fallback
    record (the listing entry) when one is given.

    Returns:
        Canonical record, or None when neither name nor national ID is present
    """
    fields = {name: first_value(raw, extractors) for name, extractors in FIELD_EXTRACTORS.items()}

    national_id = _text(fields["national_id"])
    paternal = title_case_name(fields["paternal_surname"])
    maternal = title_case_name(fields["maternal_surname"])
    given = title_case_name(fields["given_name"])

    full_name = _text(fields["full_name"])
    if _looks_like_file(full_name):
        full_name = ""
    if not full_name:
        full_name = " ".join(part for part in (paternal, maternal, given) if part)
    full_name = title_case_name(full_name)
    if len(full_name) < MIN_NAME_LENGTH:
        full_name = ""

    if fallback is not None:
        national_id = national_id or fallback.national_id
        if not full_name and fallback.full_name:
            full_name = fallback.full_name
            paternal = fallback.paternal_surname
            maternal = fallback.maternal_surname
            given = fallback.given_name

    if not full_name and not national_id:
        logger.warning(
            f"Dropping record without name or national ID "
            f"(ref={_ref(fields['person_ref'])}, keys={sorted(raw.keys())[:8]})"
        )
        return None

    if full_name and not (paternal or given):
        paternal, maternal, given = split_full_name(full_name)

    person_ref = _ref(fields["person_ref"])
    record = CanonicalCandidate(
        source_id=person_ref or national_id,
        org_ref=_ref(fields["org_ref"]),
        person_ref=person_ref,
        national_id=national_id,
        full_name=full_name,
        given_name=given,
        paternal_surname=paternal,
        maternal_surname=maternal,
        birth_date=parse_date(fields["birth_date"]),
        role=classify_role(_text(fields["cargo"]), default_role),
        region=_optional_text(fields["region"]),
        list_position=_int(fields["list_position"]),
        party_name=_optional_text(fields["party_name"]),
        party_short_name=_optional_text(fields["party_short_name"]),
        photo_url=_absolute_url(_optional_text(fields["photo_url"])),
        bio_document_url=_absolute_url(_optional_text(fields["bio_document_url"])),
        education=first_value(raw, EDUCATION_EXTRACTORS) or [],
        work_experience=_work_experience(raw),
        political_trajectory=_political_trajectory(raw),
        criminal_sentences=_criminal_sentences(raw),
        civil_sentences=_civil_sentences(raw),
        party_resignations=_party_resignations(raw),
        asset_declaration=_asset_declaration(raw),
    )

    if fallback is not None:
        missing = {name: getattr(fallback, name) for name in _FALLBACK_FIELDS
                   if not is_present(getattr(record, name)) and is_present(getattr(fallback, name))}
        if missing:
            record = record.model_copy(update=missing)
    return record


def parse_list_item(raw: Mapping,
                    default_role: CandidateRole = CandidateRole.LEGISLATOR) -> Optional[CanonicalCandidate]:
    """
    Normalize one listing-page item.

    Args:
        raw: Item from an intercepted listing response or DOM card
        default_role: Role implied by the listing category

    Returns:
        Canonical record with listing fidelity, or None if unidentifiable
    """
    if not isinstance(raw, Mapping):
        return None
    return _parse_record(raw, default_role)


LIST_CONTAINER_KEYS = ("data", "formulas", "candidatos", "lista", "items", "result",
                       "lstFormulas", "lstCandidatos")
HEAD_KEYS = ("presidente", "objPresidente", "oPresidente")
RUNNING_MATE_KEYS = ("vicepresidentes", "lstVicepresidentes", "lVicepresidentes")
FORMULA_INHERITED_KEYS = ("strOrganizacionPolitica", "idOrganizacionPolitica", "strSiglas")


def find_item_list(data: Any) -> List[Any]:
    """Locate the array of listing items inside a response body."""
    if isinstance(data, list):
        return data
    if isinstance(data, Mapping):
        for name in LIST_CONTAINER_KEYS:
            value = data.get(name)
            if isinstance(value, list):
                return value
            if isinstance(value, Mapping):
                found = find_item_list(value)
                if found:
                    return found
    return []


def expand_formula(item: Mapping, default_role: CandidateRole) -> List[Tuple[Mapping, CandidateRole]]:
    """Split a presidential formula into head of ticket and running mates."""
    head = key(*HEAD_KEYS)(item)
    mates = key(*RUNNING_MATE_KEYS)(item)
    if not isinstance(head, Mapping) and not isinstance(mates, list):
        return [(item, default_role)]

    inherited = {name: item[name] for name in FORMULA_INHERITED_KEYS if is_present(item.get(name))}
    members: List[Tuple[Mapping, CandidateRole]] = []
    if isinstance(head, Mapping):
        members.append(({**inherited, **head}, CandidateRole.HEAD_OF_TICKET))
    for mate in mates or []:
        if isinstance(mate, Mapping):
            members.append(({**inherited, **mate}, CandidateRole.RUNNING_MATE))
    return members


def parse_listing_payload(data: Any, default_role: CandidateRole) -> List[CanonicalCandidate]:
    """
    Normalize every item of a listing response body.

    Args:
        data: Decoded JSON body
        default_role: Role implied by the listing category

    Returns:
        Canonical records, unidentifiable items dropped
    """
    records = []
    for item in find_item_list(data):
        if not isinstance(item, Mapping):
            continue
        for member, role in expand_formula(item, default_role):
            record = parse_list_item(member, role)
            if record:
                records.append(record)
    return records


def unwrap_detail_payload(raw: Any) -> Mapping:
    """Strip the {data: {...}, success: ...} envelope of consolidated responses."""
    if isinstance(raw, Mapping):
        inner = raw.get("data")
        if isinstance(inner, Mapping):
            return inner
        return raw
    return {}


def parse_detail(raw: Any, role: CandidateRole, org_ref: Optional[str], person_ref: Optional[str],
                 listing: Optional[CanonicalCandidate] = None) -> Optional[CanonicalCandidate]:
    """
    Normalize a detail (hoja de vida) payload.

    Args:
        raw: Detail payload from an intercepted response or DOM extraction
        role: Role the candidate was listed under
        org_ref: Political organization reference from the listing
        person_ref: Hoja de vida reference from the listing
        listing: Listing record used to fill identity fields the detail lacks

    Returns:
        Canonical record, or None if neither source identifies the person
    """
    record = _parse_record(unwrap_detail_payload(raw), role, fallback=listing)
    if record is None:
        return None

    org_ref = org_ref or record.org_ref
    person_ref = person_ref or record.person_ref
    updates: Dict[str, Any] = {
        "role": role,
        "org_ref": org_ref,
        "person_ref": person_ref,
        "source_id": person_ref or record.source_id,
    }
    if org_ref and person_ref:
        updates["bio_document_url"] = PORTAL_BASE_URL + DETAIL_PATH_TEMPLATE.format(
            org_ref=org_ref, person_ref=person_ref)
    return record.model_copy(update=updates)
