"""Browser-based fetcher for the JNE Voto Informado portal using Playwright.

The portal is an Angular single-page application without a documented API.
Pages are rendered in a stealth Chromium session while JSON responses from
the portal's own API calls are captured; when nothing usable was captured
the rendered DOM is scraped instead.
"""

import logging
import random
import time
from typing import Any, Dict, List, Optional

from fake_useragent import UserAgent
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Browser, BrowserContext, Page, Playwright, Response
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright
from playwright_stealth import Stealth
from pydantic import BaseModel
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import (
    CAPTCHA_MARKERS,
    DETAIL_PATH_TEMPLATE,
    HEADLESS,
    MAX_RETRIES,
    NAVIGATION_TIMEOUT_MS,
    PORTAL_BASE_URL,
    RELEVANT_URL_KEYWORDS,
    RETRY_MAX_WAIT,
    RETRY_MIN_WAIT,
    SETTLE_DELAY_SECONDS,
    setup_logging,
)
from .dom_extractor import extract_detail, extract_listing
from .exceptions import (
    CaptchaDetectedError,
    ContentNotFoundError,
    PortalNavigationError,
    PortalSessionError,
    PortalTimeoutError,
    PortalTransientError,
)
from .models import CandidateRole, CanonicalCandidate
from .normalization import normalize_name
from .transformer import parse_list_item, parse_listing_payload, unwrap_detail_payload

logger = setup_logging(__name__)

DETAIL_MARKER_KEYS = (
    "oDatosPersonales", "datosPersonales", "idHojaVida", "strNombreCompleto",
    "lExperienciaLaboral", "lSentenciaPenal", "educacion", "experiencia",
)

portal_retry = retry(
    retry=retry_if_exception_type(PortalTransientError),
    stop=stop_after_attempt(MAX_RETRIES),
    wait=wait_exponential(multiplier=1, min=RETRY_MIN_WAIT, max=RETRY_MAX_WAIT),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


class CapturedResponse(BaseModel):
    """A decoded JSON response intercepted during a navigation."""
    url: str
    data: Any = None


def is_relevant_response(url: str, content_type: str) -> bool:
    """
    Decide whether an intercepted response belongs to the candidate data.

    Args:
        url: Response URL
        content_type: Value of the content-type header

    Returns:
        True for JSON responses whose URL contains a domain keyword
    """
    if "json" not in (content_type or "").lower():
        return False
    lowered = url.lower()
    return any(keyword in lowered for keyword in RELEVANT_URL_KEYWORDS)


def _is_closed_error(error: Exception) -> bool:
    message = str(error).lower()
    return "closed" in message or "crashed" in message or "disconnected" in message


class PortalSession:
    """Chromium session owned for the lifetime of one sync run."""

    def __init__(self, headless: bool = HEADLESS,
                 navigation_timeout_ms: int = NAVIGATION_TIMEOUT_MS,
                 settle_delay: float = SETTLE_DELAY_SECONDS):
        self.headless = headless
        self.navigation_timeout_ms = navigation_timeout_ms
        self.settle_delay = settle_delay
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self._captured: List[Response] = []

    def __enter__(self) -> "PortalSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def start(self) -> None:
        """
        Launch the browser and prepare a stealth page.

        Raises:
            PortalSessionError: If the browser cannot be launched
        """
        logger.info(f"Starting browser session (headless={self.headless})")
        try:
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    '--disable-blink-features=AutomationControlled',
                    '--disable-dev-shm-usage',
                    '--no-sandbox',
                    '--disable-setuid-sandbox',
                    '--disable-gpu',
                ]
            )
            self._context = self._browser.new_context(
                viewport={'width': random.randint(1366, 1920), 'height': random.randint(768, 1080)},
                user_agent=UserAgent().random,
                locale='es-PE',
                timezone_id='America/Lima',
                ignore_https_errors=True
            )
            self._context.set_extra_http_headers({
                'Accept-Language': 'es-PE,es;q=0.9,en;q=0.8',
            })
            self.page = self._context.new_page()
            Stealth().apply_stealth_sync(self.page)
            self.page.set_default_timeout(self.navigation_timeout_ms)
            self.page.on("response", self._on_response)
        except PlaywrightError as e:
            self.close()
            raise PortalSessionError(f"Could not start browser session: {e}") from e

    def close(self) -> None:
        """Release the page, browser and driver. Safe to call repeatedly."""
        for resource in (self._context, self._browser):
            if resource is None:
                continue
            try:
                resource.close()
            except PlaywrightError as e:
                logger.debug(f"Ignoring error while closing browser resource: {e}")
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as e:
                logger.debug(f"Ignoring error while stopping Playwright: {e}")
        self._playwright = None
        self._browser = None
        self._context = None
        self.page = None
        self._captured = []

    def restart(self) -> None:
        """Close and relaunch the browser."""
        logger.info("Restarting browser session")
        self.close()
        self.start()

    def _on_response(self, response: Response) -> None:
        if is_relevant_response(response.url, response.headers.get("content-type", "")):
            self._captured.append(response)

    def navigate(self, url: str) -> List[CapturedResponse]:
        """
        Load a page and return the relevant JSON responses it triggered.

        Args:
            url: Absolute portal URL

        Returns:
            Decoded relevant responses, in arrival order

        Raises:
            PortalTimeoutError: Navigation exceeded the timeout
            PortalNavigationError: Navigation failed
            PortalSessionError: The browser died and could not be restarted
        """
        if self.page is None:
            raise PortalSessionError("Browser session is not started")

        self._captured = []
        try:
            self.page.goto(url, wait_until="networkidle", timeout=self.navigation_timeout_ms)
            # The application keeps rendering after the network goes idle
            time.sleep(self.settle_delay)
            self.page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            self.page.wait_for_timeout(500)
        except PlaywrightTimeoutError as e:
            raise PortalTimeoutError(f"Timed out loading {url}") from e
        except PlaywrightError as e:
            if _is_closed_error(e):
                logger.warning(f"Browser session lost while loading {url}")
                self.restart()
                raise PortalNavigationError(f"Session restarted while loading {url}") from e
            raise PortalNavigationError(f"Navigation to {url} failed: {e}") from e

        payloads = []
        for response in list(self._captured):
            if not response.ok:
                continue
            try:
                payloads.append(CapturedResponse(url=response.url, data=response.json()))
            except (PlaywrightError, ValueError) as e:
                logger.debug(f"Ignoring unparseable response from {response.url}: {e}")
        logger.debug(f"Captured {len(payloads)} relevant responses from {url}")
        return payloads

    def content(self) -> str:
        """Rendered HTML of the current page."""
        if self.page is None:
            raise PortalSessionError("Browser session is not started")
        try:
            return self.page.content()
        except PlaywrightError as e:
            raise PortalNavigationError(f"Could not read page content: {e}") from e


def select_detail_payload(payloads: List[CapturedResponse]) -> Optional[Dict[str, Any]]:
    """Pick the captured response that carries a hoja de vida."""
    for payload in payloads:
        body = unwrap_detail_payload(payload.data)
        if any(name in body for name in DETAIL_MARKER_KEYS):
            return payload.data
    return None


def dedupe_listing(records: List[CanonicalCandidate]) -> List[CanonicalCandidate]:
    """Drop repeated listing entries for the same person, keeping the first."""
    seen = set()
    unique = []
    for record in records:
        identity = (record.person_ref or record.national_id
                    or f"{normalize_name(record.full_name)}|{record.role.value}")
        if identity in seen:
            continue
        seen.add(identity)
        unique.append(record)
    return unique


class PortalClient:
    """Fetch listings and hojas de vida through a PortalSession."""

    def __init__(self, session: PortalSession, base_url: str = PORTAL_BASE_URL):
        self.session = session
        self.base_url = base_url.rstrip("/")

    def restart(self) -> None:
        self.session.restart()

    def _check_for_captcha(self, html: str, url: str) -> None:
        lowered = html.lower()
        for marker in CAPTCHA_MARKERS:
            if marker.lower() in lowered:
                raise CaptchaDetectedError(f"Anti-bot challenge ({marker}) at {url}")

    @portal_retry
    def fetch_listing(self, category_path: str, role: CandidateRole) -> List[CanonicalCandidate]:
        """
        Fetch every candidate of a listing category.

        Args:
            category_path: Portal path such as '/senadores'
            role: Role implied by the category

        Returns:
            Listing-fidelity canonical records, de-duplicated
        """
        url = self.base_url + category_path
        logger.info(f"Fetching listing {url}")

        records: List[CanonicalCandidate] = []
        for payload in self.session.navigate(url):
            records.extend(parse_listing_payload(payload.data, role))

        if not records:
            html = self.session.content()
            self._check_for_captcha(html, url)
            records = [r for r in (parse_list_item(item, role) for item in extract_listing(html)) if r]
            if not records:
                raise ContentNotFoundError(f"No candidates found at {url}")
            logger.info(f"Listing {category_path}: {len(records)} candidates from DOM fallback")

        unique = dedupe_listing(records)
        logger.info(f"Listing {category_path}: {len(unique)} candidates")
        return unique

    @portal_retry
    def fetch_detail(self, org_ref: str, person_ref: str) -> Dict[str, Any]:
        """
        Fetch the raw hoja de vida of one candidate.

        Args:
            org_ref: Political organization id
            person_ref: Hoja de vida id

        Returns:
            Raw detail payload (API body or DOM-extracted dictionary)
        """
        url = self.base_url + DETAIL_PATH_TEMPLATE.format(org_ref=org_ref, person_ref=person_ref)
        logger.debug(f"Fetching detail {url}")

        detail = select_detail_payload(self.session.navigate(url))
        if detail is not None:
            return detail

        html = self.session.content()
        self._check_for_captcha(html, url)
        extracted = extract_detail(html)
        if not extracted:
            raise ContentNotFoundError(f"No hoja de vida content at {url}")
        logger.debug(f"Detail {person_ref}: using DOM fallback")
        return extracted
