"""Configuration management for the Peru JNE candidate sync."""

import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Paths
BASE_DIR = Path(__file__).parent.parent
LOG_DIR = Path(os.getenv("PERU_LOG_DIR", BASE_DIR / "logs"))
LOG_DIR.mkdir(parents=True, exist_ok=True)
CHECKPOINT_DIR = Path(os.getenv("PERU_CHECKPOINT_DIR", BASE_DIR / "checkpoints"))

# Supabase Configuration (validated when the store client is built)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# JNE Voto Informado portal
PORTAL_BASE_URL = os.getenv("PORTAL_BASE_URL", "https://votoinformado.jne.gob.pe")
PHOTO_BASE_URL = os.getenv("PHOTO_BASE_URL", "https://mpesije.jne.gob.pe/apidocs")
DETAIL_PATH_TEMPLATE = "/hoja-vida/{org_ref}/{person_ref}"

# Listing categories: path on the portal and the role assumed for its items
PORTAL_CATEGORIES = {
    "presidential": {"path": "/presidente-vicepresidentes", "role": "presidente"},
    "senate": {"path": "/senadores", "role": "congresista"},
    "deputies": {"path": "/diputados", "role": "congresista"},
    "andean_parliament": {"path": "/parlamento-andino", "role": "parlamento_andino"},
}

# Intercepted responses are kept only if the URL contains one of these
RELEVANT_URL_KEYWORDS = ("formula", "candidato", "lista", "hoja", "detalle", "api/")
CAPTCHA_MARKERS = ("g-recaptcha", "hcaptcha", "captcha", "cf-challenge", "Just a moment")

# Browser / timing configuration
HEADLESS = os.getenv("HEADLESS", "true").lower() == "true"
NAVIGATION_TIMEOUT_MS = int(os.getenv("NAVIGATION_TIMEOUT_MS", "60000"))
SETTLE_DELAY_SECONDS = float(os.getenv("SETTLE_DELAY_SECONDS", "4.5"))
ITEM_DELAY_SECONDS = float(os.getenv("ITEM_DELAY_SECONDS", "2.5"))
BATCH_DELAY_SECONDS = float(os.getenv("BATCH_DELAY_SECONDS", "10"))
BROWSER_RESTART_EVERY = int(os.getenv("BROWSER_RESTART_EVERY", "200"))

# Batch configuration
BATCH_SIZE = int(os.getenv("BATCH_SIZE", "10"))
CHECKPOINT_INTERVAL = int(os.getenv("CHECKPOINT_INTERVAL", "10"))

# Retry configuration
MAX_RETRIES = 3
RETRY_MIN_WAIT = 4  # seconds
RETRY_MAX_WAIT = 30  # seconds

# Matching configuration
PARTY_MATCH_THRESHOLD = 90  # fuzz.token_sort_ratio, 0-100

# Runtime Configuration
DRY_RUN = os.getenv("DRY_RUN", "false").lower() == "true"
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG" if DEBUG else "INFO")

SOURCE_NAME = "portal"  # data_hashes.source
DATA_SOURCE_LABEL = "jne"  # candidates.data_source
ENTITY_TYPE = "candidate"


# Logging Configuration
def setup_logging(name: Optional[str] = None) -> logging.Logger:
    """Set up logging configuration."""
    logger = logging.getLogger(name or __name__)

    if not logger.handlers:
        # Console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))

        # File handler
        log_file = LOG_DIR / "peru_sync.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)

        # Formatter
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler.setFormatter(formatter)
        file_handler.setFormatter(formatter)

        logger.addHandler(console_handler)
        logger.addHandler(file_handler)
        logger.setLevel(logging.DEBUG)

    return logger
