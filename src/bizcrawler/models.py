"""Data model shared by the crawler, the extractors and the merger."""
from enum import Enum
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _sequence(value: Any) -> Any:
    # LLM output sometimes returns a single object or null where a list belongs
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return value
    return (value,)


class PriceMention(_Frozen):
    raw_text: str
    amount_text: str
    label: Optional[str] = None


class RawPage(_Frozen):
    """HTML snapshot of one rendered URL, before signal extraction."""
    url: str
    final_url: str
    html: str
    nav_ms: int = 0
    total_ms: int = 0
    attempts: int = 1


class FailureKind(str, Enum):
    NAVIGATION_TIMEOUT = "navigation_timeout"
    RENDER_FAILURE = "render_failure"


class PageFailure(_Frozen):
    url: str
    reason: str
    kind: FailureKind = FailureKind.RENDER_FAILURE


class Page(_Frozen):
    url: str
    title: str = ""
    h1: str = ""
    description: str = ""
    main_text: str = ""
    prices: Tuple[PriceMention, ...] = ()
    phones: Tuple[str, ...] = ()
    emails: Tuple[str, ...] = ()
    hours: Tuple[str, ...] = ()
    outbound_links: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not (self.main_text or self.prices or self.phones or self.emails or self.hours)


class ServiceItem(_Frozen):
    name: str
    price: str = ""
    category: str = ""

    @field_validator("name", "price", "category", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _text(v)


class StaffMember(_Frozen):
    name: str
    role: str = ""

    @field_validator("name", "role", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _text(v)


class FaqItem(_Frozen):
    question: str
    answer: str = ""

    @field_validator("question", "answer", mode="before")
    @classmethod
    def _coerce_text(cls, v):
        return _text(v)


class BusinessProfile(_Frozen):
    """Business knowledge profile.

    Both extraction drafts and the merged result use this shape; a draft is
    simply a profile that has not been through the merger yet.
    """
    name: str = ""
    address: str = ""
    phone: str = ""
    email: str = ""
    hours: str = ""
    services: Tuple[ServiceItem, ...] = ()
    staff: Tuple[StaffMember, ...] = ()
    about: str = ""
    benefits: Tuple[str, ...] = ()
    faq: Tuple[FaqItem, ...] = ()
    additional_info: str = ""
    free_text_excerpt: str = ""
    source_pages: Tuple[str, ...] = ()

    @field_validator(
        "name", "address", "phone", "email", "hours", "about",
        "additional_info", "free_text_excerpt", mode="before",
    )
    @classmethod
    def _coerce_text(cls, v):
        return _text(v)

    @field_validator("services", "staff", "benefits", "faq", "source_pages", mode="before")
    @classmethod
    def _coerce_sequence(cls, v):
        return _sequence(v)


BusinessProfileDraft = BusinessProfile
