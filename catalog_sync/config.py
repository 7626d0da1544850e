"""Configuration management from environment variables."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file
load_dotenv()

# Project root
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
SPOOL_DIR = DATA_DIR / "spool"
STATE_DB = DATA_DIR / "state.db"
METRICS_FILE = DATA_DIR / "metrics.jsonl"

# Ensure directories exist
DATA_DIR.mkdir(exist_ok=True)
SPOOL_DIR.mkdir(exist_ok=True)


class Config:
    """Application configuration."""

    # Vendor search API
    VENDOR_API_BASE: str = os.getenv("VENDOR_API_BASE", "https://api.digikey.com")
    SEARCH_PATH: str = os.getenv("SEARCH_PATH", "/products/v4/search/keyword")
    TOKEN_PATH: str = os.getenv("TOKEN_PATH", "/v1/oauth2/token")
    RATE_LIMIT_HEADER: str = os.getenv("RATE_LIMIT_HEADER", "X-RateLimit-Remaining")
    VENDOR_CREDENTIALS: str | None = os.getenv("VENDOR_CREDENTIALS")
    CLIENT_ID: str | None = os.getenv("CLIENT_ID")
    CLIENT_SECRET: str | None = os.getenv("CLIENT_SECRET")

    # Search filter
    SEARCH_KEYWORDS: str = os.getenv("SEARCH_KEYWORDS", "Resistor")
    CATEGORY_ID: str = os.getenv("CATEGORY_ID", "52")
    CATEGORY_NAME: str = os.getenv("CATEGORY_NAME", "Chip Resistor - Surface Mount")
    MIN_QUANTITY_AVAILABLE: int = int(os.getenv("MIN_QUANTITY_AVAILABLE", "1"))

    # Pacing
    PAGE_SIZE: int = int(os.getenv("PAGE_SIZE", "50"))
    BURST_LIMIT: int = int(os.getenv("BURST_LIMIT", "238"))
    BURST_RESET: float = float(os.getenv("BURST_RESET", "15.0"))
    BURST_MARGIN: float = float(os.getenv("BURST_MARGIN", "1.0"))
    CONCURRENCY: int = int(os.getenv("CONCURRENCY", "15"))
    TIMEOUT: int = int(os.getenv("TIMEOUT", "30"))
    START_OFFSET: int = int(os.getenv("START_OFFSET", "0"))

    # Remediation
    REMEDIATION_ATTEMPTS: int = int(os.getenv("REMEDIATION_ATTEMPTS", "3"))
    REMEDIATION_MAX_FAILURES: int = int(os.getenv("REMEDIATION_MAX_FAILURES", "4"))

    # Comparison and writes
    COMPARE_WORKERS: int = int(os.getenv("COMPARE_WORKERS", "4"))
    BATCH_SIZE: int = int(os.getenv("BATCH_SIZE", "1000"))
    LOOKUP_CHUNK: int = int(os.getenv("LOOKUP_CHUNK", "200"))

    # Supabase
    SUPABASE_URL: str | None = os.getenv("SUPABASE_URL")
    SUPABASE_SERVICE_ROLE: str | None = os.getenv("SUPABASE_SERVICE_ROLE")
    SUPABASE_TABLE: str = os.getenv("SUPABASE_TABLE", "dk_chip_resistor")

    # Reporting portal
    PORTAL_USERNAME: str | None = os.getenv("PORTAL_USERNAME")
    PORTAL_PASSWORD: str | None = os.getenv("PORTAL_PASSWORD")
    PORTAL_PROJECT_ID: str | None = os.getenv("PORTAL_PROJECT_ID")
    SUPPLIER_BASE_URL: str = os.getenv("SUPPLIER_BASE_URL", "https://supplier.digikey.com")
    AUTH_BASE_URL: str = os.getenv("AUTH_BASE_URL", "https://auth.digikey.com")
    MSTR_BASE_URL: str = os.getenv(
        "MSTR_BASE_URL",
        "https://digikey.cloud.microstrategy.com/MicroStrategyLibrarySRPortal",
    )

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # API Security
    API_KEY: str | None = os.getenv("API_KEY")

    @classmethod
    def credentials(cls) -> list[tuple[str, str]]:
        """Return configured (client_id, client_secret) pairs."""
        pairs = []
        if cls.VENDOR_CREDENTIALS:
            for item in cls.VENDOR_CREDENTIALS.split(","):
                item = item.strip()
                if not item:
                    continue
                client_id, sep, secret = item.partition(":")
                if not sep or not client_id or not secret:
                    raise ValueError(f"Malformed VENDOR_CREDENTIALS entry starting with {item[:4]!r}")
                pairs.append((client_id.strip(), secret.strip()))
        elif cls.CLIENT_ID and cls.CLIENT_SECRET:
            pairs.append((cls.CLIENT_ID, cls.CLIENT_SECRET))
        return pairs

    @classmethod
    def validate(
        cls, require_store: bool = True, require_portal: bool = False, require_credentials: bool = True
    ) -> None:
        """Validate required configuration."""
        errors = []
        if require_store:
            if not cls.SUPABASE_URL:
                errors.append("SUPABASE_URL is required")
            if not cls.SUPABASE_SERVICE_ROLE:
                errors.append("SUPABASE_SERVICE_ROLE is required")
        if require_credentials:
            try:
                if not cls.credentials():
                    errors.append("VENDOR_CREDENTIALS or CLIENT_ID/CLIENT_SECRET is required")
            except ValueError as e:
                errors.append(str(e))
        if require_portal and not (cls.PORTAL_USERNAME and cls.PORTAL_PASSWORD):
            errors.append("PORTAL_USERNAME/PORTAL_PASSWORD are required")
        if cls.PAGE_SIZE <= 0 or cls.BURST_LIMIT <= 0:
            errors.append("PAGE_SIZE and BURST_LIMIT must be positive")
        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")


config = Config()
