"""Combine the pattern draft and the LLM draft into one profile.

Scalars: the LLM value wins when non-empty. Services and staff: the LLM list
comes first, pattern items whose normalized name was not seen are appended.
About, benefits, FAQ and additional info are LLM-only; the excerpt and the
source page list always come from the pattern draft.
"""
import logging
import re
from typing import Callable, Iterable, List, Optional, TypeVar

from .models import BusinessProfile, BusinessProfileDraft, ServiceItem

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCALAR_FIELDS = ("name", "address", "phone", "email", "hours")


def normalized_name(name: str) -> str:
    lowered = (name or "").strip().lower()
    words = re.sub(r"\s+", " ", re.sub(r"[^\w\s]", " ", lowered)).strip()
    # names made only of symbols keep their own spelling as the key
    return words or lowered


def _union(primary: Iterable[T], secondary: Iterable[T], key: Callable[[T], str]) -> List[T]:
    merged: List[T] = []
    seen = set()
    for item in [*primary, *secondary]:
        k = key(item)
        if not k or k in seen:
            continue
        seen.add(k)
        merged.append(item)
    return merged


def _merge_services(llm: Iterable[ServiceItem], pattern: Iterable[ServiceItem]) -> List[ServiceItem]:
    by_name = {}
    for item in pattern:
        by_name.setdefault(normalized_name(item.name), item)

    enriched: List[ServiceItem] = []
    for item in llm:
        other = by_name.get(normalized_name(item.name))
        if other and other.price:
            if not item.price:
                item = item.model_copy(update={"price": other.price})
            elif other.price.replace(" ", "") != item.price.replace(" ", ""):
                logger.debug(f"Price conflict for {item.name!r}: llm={item.price!r} pattern={other.price!r}")
        enriched.append(item)

    return _union(enriched, pattern, key=lambda s: normalized_name(s.name))


def merge(pattern: BusinessProfileDraft, llm: Optional[BusinessProfileDraft]) -> BusinessProfile:
    if llm is None:
        return pattern

    scalars = {f: getattr(llm, f) or getattr(pattern, f) for f in SCALAR_FIELDS}
    services = _merge_services(llm.services, pattern.services)
    staff = _union(llm.staff, pattern.staff, key=lambda s: normalized_name(s.name))

    logger.info(f"Merged profile: {len(services)} services ({len(llm.services)} from LLM), "
                f"{len(staff)} staff ({len(llm.staff)} from LLM)")

    return BusinessProfile(
        **scalars,
        services=services,
        staff=staff,
        about=llm.about,
        benefits=llm.benefits,
        faq=llm.faq,
        additional_info=llm.additional_info,
        free_text_excerpt=pattern.free_text_excerpt,
        source_pages=pattern.source_pages,
    )
