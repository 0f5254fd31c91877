import logging
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

load_dotenv()

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer value for {name}: {raw!r}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring non-numeric value for {name}: {raw!r}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class CrawlerSettings(BaseModel):
    """Runtime knobs for one pipeline instance."""
    model_config = ConfigDict(frozen=True)

    concurrency: int = 3
    nav_timeout_ms: int = 15000
    render_wait_ms: int = 500
    max_pages_cap: Optional[int] = None
    block_resources: bool = True
    headless: bool = True
    wait_until: str = "networkidle"
    user_agent: str = DEFAULT_USER_AGENT

    content_ready_chars: int = 100
    content_ready_timeout_ms: int = 3000
    carousel_max_interactions: int = 40
    carousel_clicks_per_control: int = 20
    carousel_step_ms: int = 400

    sitemap_max_urls: int = 500
    sitemap_fetch_timeout_s: float = 8.0

    llm_mode: str = "google"
    google_api_key: Optional[str] = None
    google_model: str = "gemini-1.5-flash-latest"
    deepseek_api_key: Optional[str] = None
    deepseek_api_base: Optional[str] = None
    deepseek_model: str = "deepseek-chat"
    llm_timeout_s: float = 60.0
    llm_char_budget: int = 25000

    @field_validator('concurrency')
    @classmethod
    def validate_concurrency(cls, v):
        if v <= 0 or v > 20:
            raise ValueError('concurrency must be between 1 and 20')
        return v

    @field_validator('nav_timeout_ms', 'content_ready_timeout_ms')
    @classmethod
    def validate_timeouts(cls, v):
        if v <= 0:
            raise ValueError('timeouts must be positive')
        return v

    @field_validator('render_wait_ms', 'carousel_max_interactions', 'carousel_clicks_per_control',
                     'carousel_step_ms', 'content_ready_chars')
    @classmethod
    def validate_non_negative(cls, v):
        if v < 0:
            raise ValueError('value must not be negative')
        return v

    @field_validator('max_pages_cap')
    @classmethod
    def validate_max_pages_cap(cls, v):
        if v is not None and v <= 0:
            raise ValueError('max_pages_cap must be positive')
        return v

    @field_validator('wait_until')
    @classmethod
    def validate_wait_until(cls, v):
        if v not in ("load", "domcontentloaded", "networkidle", "commit"):
            raise ValueError(f"unsupported wait_until: {v}")
        return v

    @field_validator('llm_mode')
    @classmethod
    def validate_llm_mode(cls, v):
        return (v or "google").lower()

    def effective_max_pages(self, requested: int) -> int:
        if self.max_pages_cap is None:
            return requested
        return min(requested, self.max_pages_cap)

    @classmethod
    def from_env(cls, **overrides) -> "CrawlerSettings":
        values = {
            "concurrency": _env_int("SCRAPER_CONCURRENCY", 3),
            "nav_timeout_ms": _env_int("SCRAPER_NAV_TIMEOUT_MS", 15000),
            "render_wait_ms": _env_int("SCRAPER_RENDER_WAIT_MS", 500),
            "max_pages_cap": _env_int("SCRAPER_MAX_PAGES", None),
            "block_resources": _env_bool("SCRAPER_BLOCK_RESOURCES", True),
            "headless": _env_bool("SCRAPER_HEADLESS", True),
            "wait_until": os.getenv("SCRAPER_WAIT_UNTIL", "networkidle"),
            "content_ready_chars": _env_int("SCRAPER_CONTENT_READY_CHARS", 100),
            "content_ready_timeout_ms": _env_int("SCRAPER_CONTENT_READY_TIMEOUT_MS", 3000),
            "carousel_max_interactions": _env_int("SCRAPER_CAROUSEL_MAX_INTERACTIONS", 40),
            "carousel_clicks_per_control": _env_int("SCRAPER_CAROUSEL_CLICKS_PER_CONTROL", 20),
            "carousel_step_ms": _env_int("SCRAPER_CAROUSEL_STEP_MS", 400),
            "sitemap_max_urls": _env_int("SITEMAP_MAX_URLS", 500),
            "sitemap_fetch_timeout_s": _env_float("SITEMAP_FETCH_TIMEOUT_S", 8.0),
            "llm_mode": os.getenv("LLM_MODE", "google"),
            "google_api_key": os.getenv("GOOGLE_API_KEY"),
            "google_model": os.getenv("GOOGLE_MODEL", "gemini-1.5-flash-latest"),
            "deepseek_api_key": os.getenv("DEEPSEEK_API_KEY"),
            "deepseek_api_base": os.getenv("DEEPSEEK_API_BASE"),
            "deepseek_model": os.getenv("DEEPSEEK_MODEL", "deepseek-chat"),
            "llm_timeout_s": _env_float("LLM_TIMEOUT_S", 60.0),
            "llm_char_budget": _env_int("LLM_CHAR_BUDGET", 25000),
        }
        values.update(overrides)
        return cls(**values)
