"""Deterministic first-draft profile from crawled pages."""
import logging
import re
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlsplit

from .models import BusinessProfile, BusinessProfileDraft, Page, ServiceItem, StaffMember
from .patterns import ExtractionPatterns

logger = logging.getLogger(__name__)

MAX_HOURS_LINES = 10
MAX_EXCERPT_CHARS = 80000
MAX_EXCERPT_PAGE_CHARS = 5000
DEFAULT_NAME = "Business"

_ADDRESS_PATTERNS = (
    re.compile(r"(?:adresa|address|adresse|anschrift|sídlo)[:\s]*([^,\n]{10,100}(?:,\s*\d{3}\s*\d{2}[^,\n]*)?)",
               re.IGNORECASE),
    re.compile(r"([^\W\d_][^\W\d_ .]*(?:\s+[^\W\d_][^\W\d_.]*)*\s+\d+[/\d]*[a-zA-Z]?\s*,\s*\d{3}\s?\d{2}\s+[^\W\d_][^\n,]*)"),
)

_CONTENT_SERVICE_PATTERNS = (
    re.compile(
        r"([A-ZÀ-ÞĀ-Ž][^\W\d_]*(?:[ \t\-–][^\W\d_]+)*?\s+"
        r"(?:ošetrenie|ošetření|vyšetrenie|vyšetření|liečba|léčba|terapia|terapie|lifting|modelácia|omladenie|procedúra|treatment|therapy))"
        r"[:\s–\-]+(?:od\s*|from\s*)?(\d+(?:[\s,.]\d+)?)\s*€"
    ),
    re.compile(r"([A-ZÀ-ÞĀ-Ž][^\W\d_]+(?:[ \t\-–]+[^\W\d_]+){0,6})[ \t]+(\d+(?:[,.]\d+)?)\s*€"),
)


def split_title(title: str) -> List[str]:
    return [part for part in re.split(r"\s*[|–—\-]\s*", title or "") if part]


def is_homepage(url: str) -> bool:
    path = urlsplit(url).path
    return path in ("", "/") or bool(re.match(r"^/index(?:\.\w+)?$", path, re.IGNORECASE))


class PatternNormalizer:
    def __init__(self, patterns: Optional[ExtractionPatterns] = None):
        self.patterns = patterns or ExtractionPatterns()
        self._noise = [re.compile(p, re.IGNORECASE) for p in self.patterns.title_noise]
        self._pricing_url = re.compile(self.patterns.pricing_url, re.IGNORECASE)

    def normalize(self, pages: Sequence[Page]) -> BusinessProfileDraft:
        if not pages:
            return BusinessProfile()

        phones, emails = self.contacts(pages)
        services = self.services(pages)
        staff = self.staff(pages)
        logger.info(f"Normalized: {len(services)} services, {len(staff)} staff")

        return BusinessProfile(
            name=self.business_name(pages),
            address=self.address(pages),
            phone=phones[0] if phones else "",
            email=emails[0] if emails else "",
            hours="\n".join(self.opening_hours(pages)[:MAX_HOURS_LINES]),
            services=services,
            staff=staff,
            free_text_excerpt=self.excerpt(pages),
            source_pages=[p.url for p in pages],
        )

    def business_name(self, pages: Sequence[Page]) -> str:
        host = (urlsplit(pages[0].url).hostname or "").removeprefix("www.")
        from_host = host.split(".")[0].capitalize() if host else ""

        homepage = next((p for p in pages if is_homepage(p.url)), pages[0])
        name = homepage.title or homepage.h1
        parts = split_title(name)
        if len(parts) > 1:
            candidates = [p for p in parts if 2 < len(p) < 40]
            if candidates:
                brand = next((p for p in candidates
                              if re.search(self.patterns.brand_keywords, p, re.IGNORECASE)), None)
                # the brand is usually the last part of "Page | Brand"
                name = brand or candidates[-1]

        for noise in self._noise:
            name = noise.sub("", name)
        name = re.sub(r"\s+", " ", name).strip(" |–—-")

        if len(name) < 3 or len(name) > 50:
            name = from_host
        return name or DEFAULT_NAME

    def services(self, pages: Sequence[Page]) -> List[ServiceItem]:
        services: List[ServiceItem] = []
        seen = set()

        def add(name: str, price: str):
            name = re.sub(r"^\d+[.)]\s*", "", name)
            name = re.sub(r"\s+", " ", name).strip(" :–—-")
            key = name.lower()
            if 3 < len(name) < 150 and key not in seen:
                seen.add(key)
                services.append(ServiceItem(name=name, price=price))

        for page in pages:
            for mention in page.prices:
                name = mention.label or re.split(r"[:–\-]", mention.raw_text)[0]
                add(name, mention.amount_text)

        for page in pages:
            if not self._pricing_url.search(page.url):
                continue
            for pattern in _CONTENT_SERVICE_PATTERNS:
                for match in pattern.finditer(page.main_text):
                    name = match.group(1).strip()
                    if 4 < len(name) < 100:
                        add(name, f"{match.group(2)}€")

        return services

    def staff(self, pages: Sequence[Page]) -> List[StaffMember]:
        members: List[StaffMember] = []
        seen_surnames = set()
        for page in pages:
            text = page.main_text
            for match in self.patterns.staff.finditer(text):
                surname = match.group("name").split()[-1].lower()
                if surname in seen_surnames:
                    continue
                seen_surnames.add(surname)
                full_name = re.sub(r"\s+", " ", match.group(0).split(",")[0]).strip()
                # roles usually follow the name; fall back to the line above it
                role = (self._role(text[match.end():match.end() + 300])
                        or self._role(text[max(0, match.start() - 100):match.start()]))
                members.append(StaffMember(name=full_name, role=role))
        return members

    def _role(self, context: str) -> str:
        for pattern in self.patterns.roles:
            found = pattern.search(context)
            if found:
                return found.group(0)
        return ""

    def contacts(self, pages: Sequence[Page]) -> Tuple[List[str], List[str]]:
        phones: List[str] = []
        emails: List[str] = []
        for page in pages:
            for phone in page.phones:
                phone = re.sub(r"\s+", " ", phone).strip()
                if phone not in phones:
                    phones.append(phone)
            for email in page.emails:
                email = email.lower()
                if email not in emails:
                    emails.append(email)
        return phones, emails

    def address(self, pages: Sequence[Page]) -> str:
        for page in pages:
            for pattern in _ADDRESS_PATTERNS:
                match = pattern.search(page.main_text)
                if match:
                    return match.group(1).strip()
        return ""

    def opening_hours(self, pages: Sequence[Page]) -> List[str]:
        lines: List[str] = []
        for page in pages:
            lines.extend(page.hours)
            lines.extend(m.group(0) for m in self.patterns.hours.finditer(page.main_text))

        unique: List[str] = []
        for line in lines:
            line = re.sub(r"\s+", " ", line).strip()
            if line and line not in unique:
                unique.append(line)
        # weekday ranges first; sorted() is stable so the rest keep page order
        return sorted(unique, key=lambda h: 0 if self.patterns.week_start.search(h) else 1)

    def excerpt(self, pages: Sequence[Page]) -> str:
        blocks = []
        for page in pages:
            block = f"=== {page.title or page.h1 or 'Page'} ===\nURL: {page.url}\n"
            if page.prices:
                block += "\nPRICES:\n" + "\n".join(f"- {p.raw_text}" for p in page.prices)
            block += "\n\nCONTENT:\n" + page.main_text[:MAX_EXCERPT_PAGE_CHARS]
            blocks.append(block)
        return "\n\n---\n\n".join(blocks)[:MAX_EXCERPT_CHARS]
