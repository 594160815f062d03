"""Shared fixtures: in-memory store, scripted portal, raw payloads."""

import copy
from typing import Any, Dict, List, Optional

import pytest

from Peru.src.checkpoint import CheckpointStore
from Peru.src.database import CandidateStore
from Peru.src.exceptions import SlugConflictError, StoreError
from Peru.src.models import CandidateRole, CanonicalCandidate, DataFingerprint, ExistingCandidate


class InMemoryStore(CandidateStore):
    """CandidateStore kept in dictionaries, with a unique slug constraint."""

    def __init__(self):
        self.candidates: Dict[str, Dict[str, Any]] = {}
        self.parties: List[Dict[str, Any]] = []
        self.fingerprints: Dict[tuple, DataFingerprint] = {}
        self.update_calls: List[tuple] = []
        self.failing_ids = set()
        self._next_id = 1

    def _new_id(self, prefix: str) -> str:
        new_id = f"{prefix}-{self._next_id}"
        self._next_id += 1
        return new_id

    def add_candidate(self, **row) -> str:
        """Seed a stored candidate directly."""
        candidate_id = row.pop("id", None) or self._new_id("cand")
        self.candidates[candidate_id] = {"id": candidate_id, **row}
        return candidate_id

    def get_existing_candidates(self) -> List[ExistingCandidate]:
        return [
            ExistingCandidate(
                id=candidate_id,
                national_id=row.get("dni"),
                full_name=row.get("full_name") or "",
                role=row.get("cargo"),
                party_id=row.get("party_id"),
                slug=row.get("slug"),
            )
            for candidate_id, row in self.candidates.items()
        ]

    def get_candidate(self, candidate_id: str) -> Optional[Dict[str, Any]]:
        row = self.candidates.get(candidate_id)
        return copy.deepcopy(row) if row else None

    def get_candidate_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        for row in self.candidates.values():
            if row.get("slug") == slug:
                return copy.deepcopy(row)
        return None

    def insert_candidate(self, row: Dict[str, Any]) -> str:
        if any(existing.get("slug") == row["slug"] for existing in self.candidates.values()):
            raise SlugConflictError(row["slug"])
        candidate_id = self._new_id("cand")
        self.candidates[candidate_id] = {**copy.deepcopy(row), "id": candidate_id}
        return candidate_id

    def update_candidate(self, candidate_id: str, updates: Dict[str, Any]) -> None:
        if candidate_id in self.failing_ids:
            raise StoreError(f"connection reset updating {candidate_id}")
        self.update_calls.append((candidate_id, copy.deepcopy(updates)))
        self.candidates[candidate_id].update(copy.deepcopy(updates))

    def list_parties(self) -> List[Dict[str, Any]]:
        return [dict(party) for party in self.parties]

    def create_party(self, name: str, short_name: Optional[str], slug: str) -> str:
        party_id = self._new_id("party")
        self.parties.append({"id": party_id, "name": name, "short_name": short_name, "slug": slug})
        return party_id

    def get_fingerprint(self, entity_type: str, entity_id: str, source: str) -> Optional[DataFingerprint]:
        return self.fingerprints.get((entity_type, entity_id, source))

    def upsert_fingerprint(self, fingerprint: DataFingerprint) -> None:
        key = (fingerprint.entity_type, fingerprint.entity_id, fingerprint.source)
        self.fingerprints[key] = fingerprint


class FakePortal:
    """Scripted stand-in for PortalClient."""

    def __init__(self, listings: Dict[str, List[CanonicalCandidate]],
                 details: Optional[Dict[str, Dict[str, Any]]] = None,
                 failures: Optional[Dict[str, Exception]] = None):
        self.listings = listings
        self.details = details or {}
        self.failures = failures or {}
        self.listing_calls: List[str] = []
        self.detail_calls: List[str] = []
        self.restarts = 0
        self.on_detail = None

    def fetch_listing(self, category_path: str, role: CandidateRole) -> List[CanonicalCandidate]:
        self.listing_calls.append(category_path)
        return [item.model_copy(deep=True) for item in self.listings.get(category_path, [])]

    def fetch_detail(self, org_ref: str, person_ref: str) -> Dict[str, Any]:
        self.detail_calls.append(person_ref)
        if self.on_detail is not None:
            self.on_detail(person_ref)
        if person_ref in self.failures:
            raise self.failures[person_ref]
        return copy.deepcopy(self.details.get(person_ref, {}))

    def restart(self) -> None:
        self.restarts += 1


def make_listing_item(person_ref: str, full_name: str, national_id: str = "",
                      party_name: str = "Partido Alfa",
                      role: CandidateRole = CandidateRole.LEGISLATOR) -> CanonicalCandidate:
    paternal, maternal, given = (full_name.split(" ") + ["", "", ""])[:3]
    return CanonicalCandidate(
        source_id=person_ref,
        org_ref="10",
        person_ref=person_ref,
        national_id=national_id,
        full_name=full_name,
        paternal_surname=paternal,
        maternal_surname=maternal,
        given_name=given,
        role=role,
        party_name=party_name,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def checkpoint_store(tmp_path):
    return CheckpointStore(tmp_path / "checkpoints")


@pytest.fixture
def consolidated_detail():
    """A GetHVConsolidado-style response body."""
    return {
        "success": True,
        "data": {
            "oDatosPersonales": {
                "idHojaVida": 135790,
                "idOrganizacionPolitica": 1257,
                "strDocumentoIdentidad": "10203040",
                "strApellidoPaterno": "QUISPE",
                "strApellidoMaterno": "MAMANI",
                "strNombres": "ROSA ELENA",
                "strFechaNacimiento": "15/03/1970",
                "strOrganizacionPolitica": "PARTIDO DEMOCRATICO ANDINO",
                "strPostulaDistrito": "CUSCO",
            },
            "oEduBasica": {
                "strEduPrimaria": "1",
                "strConcluidoEduPrimaria": "1",
                "strEduSecundaria": "1",
                "strConcluidoEduSecundaria": "1",
            },
            "oEduTecnico": {"strEduTecnico": "0"},
            "lEduUniversitaria": [
                {
                    "strUniversidad": "UNIVERSIDAD NACIONAL SAN ANTONIO ABAD",
                    "strCarreraUni": "DERECHO",
                    "strConcluidoEduUni": "1",
                    "strAnioTitulo": "1996",
                }
            ],
            "lEduPosgrado": [
                {
                    "strCenEstudioPosgrado": "PONTIFICIA UNIVERSIDAD CATOLICA",
                    "strEspecialidadPosgrado": "DERECHO CONSTITUCIONAL",
                    "strEsMaestro": "1",
                    "strConcluidoPosgrado": "0",
                    "strAnioPosgrado": "2004",
                }
            ],
            "lExperienciaLaboral": [
                {
                    "strCentroTrabajo": "MUNICIPALIDAD PROVINCIAL DEL CUSCO",
                    "strOcupacionProfesion": "ASESORA LEGAL",
                    "strAnioTrabajoDesde": "2010",
                    "strAnioTrabajoHasta": "2014",
                }
            ],
            "lCargoPartidario": [
                {
                    "strOrgPolCargoPartidario": "PARTIDO DEMOCRATICO ANDINO",
                    "strCargoPartidario": "SECRETARIA REGIONAL",
                    "strAnioCargoPartiDesde": "2015",
                    "strAnioCargoPartiHasta": "2019",
                }
            ],
            "lCargoEleccion": [{"strCargoEleccion": "REGIDORA PROVINCIAL"}],
            "lSentenciaPenal": [
                {
                    "strExpedientePenal": "00123-2012-0-1001-JR-PE-01",
                    "strJuzgado": "PRIMER JUZGADO PENAL DEL CUSCO",
                    "strDelito": "USURPACION",
                    "strPena": "PENA PRIVATIVA DE LIBERTAD SUSPENDIDA",
                    "strEstado": "SENTENCIA CONSENTIDA Y EJECUTORIADA",
                }
            ],
            "lSentenciaObliga": [
                {
                    "strExpedienteObliga": "00456-2018-0-1001-JP-FC-02",
                    "strMateria": "PENSION DE ALIMENTOS",
                    "strJuzgadoObliga": "JUZGADO DE PAZ LETRADO",
                    "decMontoObliga": "S/. 1,500.50",
                    "strEstadoObliga": "EN APELACIÓN",
                }
            ],
            "lRenunciaOP": [
                {
                    "strOrgPolRenunciaOP": "ALIANZA PARA EL PROGRESO",
                    "strTipoAfiliacion": "MILITANTE",
                    "strFechaRenuncia": "01/02/2014",
                }
            ],
            "oIngresos": {
                "strAnioIngresos": "2024",
                "decRemuBrutaPublico": "1000.00",
                "decRemuBrutaPrivado": "500",
            },
            "lBienInmueble": [{"decAutovaluo": "120000"}, {"decValor": "30000"}],
            "lBienMueble": [{"decValor": "25000"}],
        },
    }


LISTING_HTML = """
<html><body>
<div class="lista">
  <app-card-candidato>
    <img src="/fotos/55.jpg">
    <h3>GARCIA LEON CARLOS</h3>
    <span class="partido">PARTIDO SOL</span>
    <span class="cargo">SENADOR</span>
    <a href="/hoja-vida/7/55">Ver hoja de vida</a>
  </app-card-candidato>
  <app-card-candidato>
    <h3>GIL</h3>
  </app-card-candidato>
  <app-card-candidato>
    <h3>PAZ ORTIZ LUCIA</h3>
    <span class="partido">FRENTE VERDE</span>
  </app-card-candidato>
</div>
</body></html>
"""

DETAIL_HTML = """
<html><body>
<h1>GARCIA LEON CARLOS</h1>
<div class="foto-candidato"><img src="/fotos/55.jpg"></div>
<span class="dni">DNI: 40506070</span>
<div class="mat-expansion-panel">
  <h3>Formación académica</h3>
  <table>
    <tr><th>Nivel</th><th>Centro</th><th>Carrera</th><th>Año</th></tr>
    <tr><td>Universitaria</td><td>UNMSM</td><td>Derecho</td><td>2001</td></tr>
  </table>
</div>
<div class="mat-expansion-panel">
  <h3>Sentencias penales</h3>
  <table><tr><td>No registra sentencias</td></tr></table>
</div>
<div class="mat-expansion-panel">
  <h3>Sentencias por obligaciones civiles</h3>
  <table>
    <tr><td>Alimentos</td><td>123-2015</td><td>Juzgado de Paz</td><td>10/05/2016</td><td>S/ 800</td><td>Firme</td></tr>
  </table>
</div>
<div class="mat-expansion-panel">
  <h3>Declaración de bienes</h3>
  <p>Ingresos: S/ 48,000.00 Inmuebles: 2 Vehículos: 1 Total: S/ 350,000.00</p>
</div>
</body></html>
"""

PENAL_TABLE_HTML = """
<html><body>
<h1>ROJAS SILVA ANDRES</h1>
<div id="sentencias-penales">
  <table>
    <tr><th>Expediente</th><th>Juzgado</th><th>Delito</th></tr>
    <tr>
      <td>00045-2010</td><td>Juzgado Penal de Lima</td><td>Peculado</td><td>12/01/2012</td>
      <td>4 años</td><td>Suspendida</td><td>Consentida</td><td>SI</td>
    </tr>
  </table>
</div>
</body></html>
"""
