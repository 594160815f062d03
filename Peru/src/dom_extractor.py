"""DOM fallback extraction for portal pages.

Used when a navigation captured no usable JSON response. Produces raw
dictionaries keyed like the legacy portal payloads so the transformer can
normalize them with the same extractors it uses for API responses.
"""

import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from .config import setup_logging
from .normalization import clean_text, strip_accents

logger = setup_logging(__name__)

# Selector sets are tried in order; the first one yielding items wins.
LISTING_CARD_SELECTORS = [
    "app-card-formula",
    "app-card-candidato",
    '[class*="card-formula"]',
    '[class*="card-candidato"]',
    '[class*="tarjeta"]',
    ".mat-card",
]
CARD_NAME_SELECTORS = ["h3", "h4", "h5", ".nombre", '[class*="nombre"]', ".mat-card-title"]
CARD_PARTY_SELECTORS = [".partido", '[class*="partido"]', '[class*="organizacion"]', ".subtitle"]
CARD_CARGO_SELECTORS = [".cargo", '[class*="cargo"]']
HOJA_VIDA_LINK = re.compile(r"hoja-vida/(\d+)/(\d+)")

DETAIL_NAME_SELECTORS = ["h1", "h2", ".nombre-candidato"]
DETAIL_PHOTO_SELECTORS = [".foto-candidato img", '[class*="foto"] img']
DETAIL_DNI_SELECTORS = ["[data-dni]", ".dni", '[class*="dni"]']
SECTION_SELECTOR = '.mat-expansion-panel, [class*="seccion"], [class*="section"], .accordion-item'
SECTION_TITLE_SELECTOR = "h3, h4, .titulo, mat-panel-title"

# Section title keywords, checked in order, mapped to the raw payload key
SECTION_KEYWORDS = [
    (("renuncia", "afiliacion"), "renuncias"),
    (("civil", "obligacion"), "sentenciasCiviles"),
    (("penal", "sentencia"), "sentenciasPenales"),
    (("bien", "patrimonio"), "bienes"),
    (("trayectoria", "politica"), "trayectoriaPolitica"),
    (("experiencia", "laboral"), "experiencia"),
    (("educacion", "formacion"), "educacion"),
]

SENTENCE_TABLE_SELECTORS = {
    "sentenciasPenales": [
        "#sentencias-penales tr",
        ".sentencias-penales tr",
        '[data-section="penal"] tr',
        '.seccion-v tr',
        'table:-soup-contains("Sentencias Penales") tr',
        "#tblSentenciasPenales tr",
    ],
    "sentenciasCiviles": [
        "#sentencias-civiles tr",
        ".sentencias-civiles tr",
        '[data-section="civil"] tr',
        '.seccion-vi tr',
        'table:-soup-contains("Obligaciones") tr',
        "#tblSentenciasCiviles tr",
    ],
    "renuncias": [
        "#renuncias tr",
        ".renuncias-partidos tr",
        '[data-section="renuncias"] tr',
        '.seccion-vii tr',
        'table:-soup-contains("Renuncia") tr',
        "#tblRenuncias tr",
    ],
}

_NO_RECORDS = ("no tiene", "no registra", "ninguno")


def _first_text(node: Tag, selectors: List[str]) -> str:
    for selector in selectors:
        found = node.select_one(selector)
        if found:
            text = clean_text(found.get_text(" "))
            if text:
                return text
    return ""


def _cell_texts(row: Tag) -> List[str]:
    cells = row.find_all("td") or row.select("span, .cell")
    return [clean_text(cell.get_text(" ")) for cell in cells]


def _cell(cells: List[str], index: int) -> str:
    return cells[index] if index < len(cells) else ""


def _fold(text: str) -> str:
    return strip_accents(text).lower()


def extract_listing(html: str) -> List[Dict[str, Any]]:
    """
    Extract candidate cards from a rendered listing page.

    Args:
        html: Page HTML

    Returns:
        Raw item dictionaries, empty when no selector set matched
    """
    soup = BeautifulSoup(html, "html.parser")
    for selector in LISTING_CARD_SELECTORS:
        items = []
        for card in soup.select(selector):
            name = _first_text(card, CARD_NAME_SELECTORS)
            if len(name) <= 3:
                continue
            item: Dict[str, Any] = {
                "strNombreCompleto": name,
                "strOrganizacionPolitica": _first_text(card, CARD_PARTY_SELECTORS),
                "strCargo": _first_text(card, CARD_CARGO_SELECTORS),
            }
            link = card.select_one('a[href*="hoja-vida"]')
            match = HOJA_VIDA_LINK.search(link.get("href", "")) if link else None
            if match:
                item["idOrganizacionPolitica"] = match.group(1)
                item["idHojaVida"] = match.group(2)
            image = card.select_one("img")
            if image and image.get("src"):
                item["strFoto"] = image["src"]
            items.append(item)
        if items:
            logger.debug(f"DOM listing: {len(items)} cards via {selector!r}")
            return items
    return []


def _education_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 2:
        return None
    return {
        "strNivelEstudio": _cell(cells, 0),
        "strCentroEstudio": _cell(cells, 1),
        "strCarrera": _cell(cells, 2),
        "intAnioEstudio": _cell(cells, 3),
        "blnConcluido": "inconcluso" not in row_text,
    }


def _experience_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 2:
        return None
    return {
        "strCentroTrabajo": _cell(cells, 0),
        "strOcupacion": _cell(cells, 1),
        "intAnioInicio": _cell(cells, 2),
        "intAnioFin": _cell(cells, 3),
    }


def _trajectory_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 2:
        return None
    return {
        "strPartido": _cell(cells, 0),
        "strCargo": _cell(cells, 1),
        "intAnioInicio": _cell(cells, 2),
        "intAnioFin": _cell(cells, 3),
        "blnElecto": "electo" in row_text,
    }


def _penal_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 3:
        return None
    return {
        "strExpediente": _cell(cells, 0),
        "strJuzgado": _cell(cells, 1),
        "strDelito": _cell(cells, 2),
        "dteFechaSentencia": _cell(cells, 3),
        "strPena": _cell(cells, 4),
        "strModalidad": _cell(cells, 5),
        "strEstado": _cell(cells, 6),
        "blnRehabilitado": _cell(cells, 7),
    }


def _civil_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 2:
        return None
    return {
        "strTipo": _cell(cells, 0),
        "strExpediente": _cell(cells, 1),
        "strJuzgado": _cell(cells, 2),
        "strMateria": _cell(cells, 0) or _cell(cells, 2),
        "dteFechaSentencia": _cell(cells, 3),
        "decMonto": _cell(cells, 4),
        "strEstado": _cell(cells, 5),
    }


def _resignation_row(cells: List[str], row_text: str) -> Optional[Dict[str, Any]]:
    if len(cells) < 2:
        return None
    return {
        "strPartido": _cell(cells, 0),
        "strFechaAfiliacion": _cell(cells, 1),
        "strFechaRenuncia": _cell(cells, 2),
        "strTipoAfiliacion": _cell(cells, 3),
    }


ROW_PARSERS = {
    "educacion": _education_row,
    "experiencia": _experience_row,
    "trayectoriaPolitica": _trajectory_row,
    "sentenciasPenales": _penal_row,
    "sentenciasCiviles": _civil_row,
    "renuncias": _resignation_row,
}


def _parse_rows(rows: List[Tag], row_parser) -> List[Dict[str, Any]]:
    items = []
    for row in rows:
        if row.name == "tr" and not row.find("td"):
            continue  # header row
        row_text = _fold(clean_text(row.get_text(" ")))
        if not row_text or any(marker in row_text for marker in _NO_RECORDS):
            continue
        item = row_parser(_cell_texts(row), row_text)
        if item:
            items.append(item)
    return items


_AMOUNT = r"S/\.?\s*([\d,.]+)"


def _assets_from_text(text: str) -> Dict[str, Any]:
    folded = _fold(text)
    total = re.search(r"total[:\s]*" + _AMOUNT, text, re.IGNORECASE)
    income = re.search(r"ingresos?[:\s]*" + _AMOUNT, text, re.IGNORECASE)
    real_estate = re.search(r"inmuebles?[:\s]*(\d+)", folded)
    vehicles = re.search(r"vehiculos?[:\s]*(\d+)", folded)
    return {
        "decTotalBienes": total.group(1) if total else None,
        "decIngresoTotal": income.group(1) if income else None,
        "intCantidadInmuebles": real_estate.group(1) if real_estate else None,
        "intCantidadVehiculos": vehicles.group(1) if vehicles else None,
    }


def extract_detail(html: str) -> Dict[str, Any]:
    """
    Extract a hoja de vida from a rendered detail page.

    Args:
        html: Page HTML

    Returns:
        Raw detail dictionary in the legacy payload shape
    """
    soup = BeautifulSoup(html, "html.parser")
    data: Dict[str, Any] = {}

    name = _first_text(soup, DETAIL_NAME_SELECTORS)
    if name:
        data["strNombreCompleto"] = name
    for selector in DETAIL_PHOTO_SELECTORS:
        photo = soup.select_one(selector)
        if photo and photo.get("src"):
            data["strFoto"] = photo["src"]
            break
    for selector in DETAIL_DNI_SELECTORS:
        node = soup.select_one(selector)
        if node:
            digits = re.search(r"\d{8}", node.get("data-dni") or node.get_text(" "))
            if digits:
                data["strDocumentoIdentidad"] = digits.group(0)
                break

    for section in soup.select(SECTION_SELECTOR):
        title_node = section.select_one(SECTION_TITLE_SELECTOR)
        title = _fold(clean_text(title_node.get_text(" "))) if title_node else ""
        if not title:
            continue
        target = next((name for keywords, name in SECTION_KEYWORDS
                       if any(word in title for word in keywords)), None)
        if target is None or data.get(target):
            continue
        if target == "bienes":
            data["bienes"] = _assets_from_text(section.get_text(" "))
            continue
        items = _parse_rows(section.select("tr, li, .item-row"), ROW_PARSERS[target])
        if items:
            data[target] = items

    for target, selectors in SENTENCE_TABLE_SELECTORS.items():
        if data.get(target):
            continue
        for selector in selectors:
            items = _parse_rows(soup.select(selector), ROW_PARSERS[target])
            if items:
                data[target] = items
                break

    return data
