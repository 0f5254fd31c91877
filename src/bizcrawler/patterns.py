"""Keyword, selector and regex tables handed to the crawl components.

Everything here is immutable; components receive an instance at construction
time, so a caller can swap in tables for another market without touching the
crawler itself.
"""
import re
from dataclasses import dataclass, field
from typing import Mapping, Pattern, Tuple
from types import MappingProxyType
from urllib.parse import urlsplit


def _compile_all(patterns, flags=re.IGNORECASE) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, flags) for p in patterns)


TRACKING_PARAMS = frozenset({
    "gad_source", "gad_campaignid", "gbraid", "wbraid", "gclid", "dclid",
    "fbclid", "msclkid", "mc_cid", "mc_eid", "_ga", "_gl",
    "utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content",
})


@dataclass(frozen=True)
class CrawlPatterns:
    """URL filters used when building the frontier."""
    ignore: Tuple[Pattern, ...]
    priority: Tuple[Pattern, ...]
    tracking_params: frozenset = TRACKING_PARAMS

    @staticmethod
    def _location(url: str) -> str:
        # only the path and query classify a page
        parts = urlsplit(url)
        return f"{parts.path}?{parts.query}" if parts.query else parts.path

    def should_ignore(self, url: str) -> bool:
        location = self._location(url)
        return any(p.search(location) for p in self.ignore)

    def is_priority(self, url: str) -> bool:
        location = self._location(url)
        return any(p.search(location) for p in self.priority)

    @classmethod
    def default(cls) -> "CrawlPatterns":
        return cls(
            ignore=_compile_all([
                r"blog", r"news", r"article", r"nunews",
                r"admin", r"login", r"signup", r"register",
                r"privacy", r"terms", r"cookie", r"gdpr",
                r"cart", r"checkout", r"payment",
                r"\.pdf$", r"\.jpe?g$", r"\.png$", r"\.gif$", r"\.webp$", r"\.svg$",
                r"\.zip$", r"\.docx?$", r"\.xlsx?$", r"\.mp[34]$",
                r"mailto:", r"tel:", r"javascript:",
                r"#$",
            ]),
            priority=_compile_all([
                r"cennik", r"cenik", r"price", r"pricing", r"ceny", r"preise",
                r"sluzby", r"service", r"treatment", r"leistungen",
                r"kontakt", r"contact",
                r"o-nas", r"about", r"team",
                r"ordinacne", r"hour", r"open",
                # team/people pages
                r"ludia", r"tym", r"personal", r"zamestnanci", r"lekari", r"lekar",
                r"doktori", r"odbornici", r"specialisti", r"nas-tym", r"nasi-lekari",
                r"doctors", r"staff", r"our-team", r"meet-the-team", r"practitioners",
                # product/model pages
                r"models", r"product", r"vozidl",
                r"sedan", r"suv", r"coupe", r"kombi", r"hatchback",
                r"electric", r"hybrid", r"overview",
            ]),
        )


DAY_NAMES: Mapping[str, Tuple[str, ...]] = MappingProxyType({
    "en": (
        "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
        "mon", "tue", "tues", "wed", "thu", "thur", "thurs", "fri", "sat", "sun",
    ),
    "sk": (
        "pondelok", "utorok", "streda", "štvrtok", "piatok", "sobota", "nedeľa",
        "pon", "str", "štv", "pia", "sob", "ned",
        "po", "ut", "st", "št", "pi", "so", "ne",
    ),
    "cs": (
        "pondělí", "úterý", "středa", "čtvrtek", "pátek", "sobota", "neděle",
        "út", "čt", "pá",
    ),
    "de": (
        "montag", "dienstag", "mittwoch", "donnerstag", "freitag", "samstag", "sonntag",
        "mo", "di", "mi", "do", "fr", "sa",
    ),
})

# Names that open a working week; hours lines containing one sort first.
WEEK_START_NAMES = ("monday", "mon", "pondelok", "pon", "po", "pondělí", "montag", "mo")

CURRENCY_SUFFIXES = ("€", "EUR", "Kč", "CZK", "$", "USD", "£", "GBP", "CHF", "zł", "PLN")
CURRENCY_PREFIXES = ("€", "$", "£")

STAFF_TITLES = (
    r"MUDr\.", r"MDDr\.", r"Dr\.\s?med\.(?:\s?univ\.)?", r"Dr\.", r"PhDr\.", r"PaedDr\.",
    r"Mgr\.", r"Ing\.", r"Bc\.", r"doc\.", r"prof\.", r"Prof\.", r"Dipl\.-Ing\.",
)

ROLE_KEYWORDS = (
    r"plastick[áý]\s*chirurgi[ae]|plastic\s+surgeon",
    r"dermatológ(?:ia)?|dermatolog\w*",
    r"stomatochirurg(?:ia)?",
    r"stomatológ(?:ia)?|zubn[ýá]\s+lekár|dentist",
    r"dentálna\s+hygieni\w+|dental\s+hygienist",
    r"gynekológ(?:ia)?|gyn(?:a|e)colog\w*",
    r"urológ(?:ia)?|urolog\w*",
    r"neurológ(?:ia)?|neurolog\w*",
    r"cievn[áý]\s*chirurg\w*|vascular\s+surgeon",
    r"\bORL\b|otolaryngológ\w*",
    r"nefrológ(?:ia)?",
    r"psychosomatick\w*",
    r"všeobecn[ýá]\s*lekár|general\s+practitioner",
    r"fyzioterapeut\w*|physiotherapist",
    r"surgeon|chirurg",
    r"zdravotn[áa]\s+sestra|nurse",
    r"barber|stylist|kaderní\w+",
    r"owner|founder|co-founder|majiteľ\w*|konateľ\w*",
    r"manager|manažér\w*|director|riaditeľ\w*",
)

BRAND_KEYWORDS = r"klinik|clinic|center|centrum|studio|salon|dental|praxis"

TITLE_NOISE = (
    r"\bhome(?:page)?\b", r"\bdomov\b", r"hlavná stránka", r"\búvod\b", r"\bstartseite\b",
    r"\bwelcome\b",
)

CAROUSEL_NEXT_SELECTORS = (
    ".swiper-button-next",
    ".slick-next",
    ".carousel-next",
    ".carousel-control-next",
    ".owl-next",
    ".splide__arrow--next",
    '[class*="swiper"][class*="next"]',
    '[class*="slider"][class*="next"]',
    '[class*="carousel"][class*="next"]',
    'button[aria-label*="next" i]',
    '[class*="arrow-right"]',
    '[class*="arrow"][class*="next"]',
)

CAROUSEL_PAGINATION_SELECTORS = (
    ".swiper-pagination-bullet",
    ".slick-dots button",
    ".carousel-indicators button",
    ".carousel-indicators li",
    ".owl-dots button",
    ".owl-dot",
    ".splide__pagination button",
    '[class*="pagination"] button',
    '[class*="pagination"] [class*="dot"]',
    '[class*="dots"] button',
)

CAROUSEL_CONTAINER_SELECTORS = (
    ".swiper-wrapper",
    ".slick-track",
    ".carousel-inner",
    ".owl-stage",
    ".splide__list",
    '[class*="swiper"]',
    '[class*="slider"]',
    '[class*="carousel"]',
)

CAROUSEL_ITEM_SELECTORS = ('[class*="slide"]', '[class*="item"]', '[class*="card"]')


@dataclass(frozen=True)
class CarouselSelectors:
    next_buttons: Tuple[str, ...] = CAROUSEL_NEXT_SELECTORS
    pagination: Tuple[str, ...] = CAROUSEL_PAGINATION_SELECTORS
    containers: Tuple[str, ...] = CAROUSEL_CONTAINER_SELECTORS
    items: Tuple[str, ...] = CAROUSEL_ITEM_SELECTORS

    @property
    def item_selector(self) -> str:
        return ", ".join(f"{c} {i}" for c in self.containers for i in self.items)


def _alternation(words) -> str:
    # longest first so "monday" wins over "mon"
    return "|".join(re.escape(w) for w in sorted(set(words), key=len, reverse=True))


_AMOUNT = r"\d{1,3}(?:[ \u00a0.,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?"


@dataclass(frozen=True)
class ExtractionPatterns:
    """Compiled regexes for the Signal Extractor and Pattern Normalizer."""
    day_names: Mapping[str, Tuple[str, ...]] = field(default_factory=lambda: DAY_NAMES)
    week_start_names: Tuple[str, ...] = WEEK_START_NAMES
    currency_suffixes: Tuple[str, ...] = CURRENCY_SUFFIXES
    currency_prefixes: Tuple[str, ...] = CURRENCY_PREFIXES
    staff_titles: Tuple[str, ...] = STAFF_TITLES
    role_keywords: Tuple[str, ...] = ROLE_KEYWORDS
    brand_keywords: str = BRAND_KEYWORDS
    title_noise: Tuple[str, ...] = TITLE_NOISE
    pricing_url: str = r"cennik|cenik|price|pricing|ceny|preise|sluzby|service|leistungen"
    content_selectors: Tuple[str, ...] = (
        "#__next main", "#__next", "#root main", "#root", "main", "article",
        '[role="main"]', ".content", "#content", ".page-content", ".main-content", "body",
    )
    price_row_selectors: str = (
        'table tr, .price-item, .cennik-item, [class*="price"], [class*="cennik"]'
    )
    nav_link_selectors: str = (
        'nav a[href], header a[href], [role="navigation"] a[href], '
        '.nav a[href], .menu a[href], .navigation a[href]'
    )

    # filled in by __post_init__
    price: Pattern = field(init=False, repr=False)
    prefixed_price: Pattern = field(init=False, repr=False)
    labelled_price: Pattern = field(init=False, repr=False)
    phone: Pattern = field(init=False, repr=False)
    email: Pattern = field(init=False, repr=False)
    hours: Pattern = field(init=False, repr=False)
    week_start: Pattern = field(init=False, repr=False)
    staff: Pattern = field(init=False, repr=False)
    roles: Tuple[Pattern, ...] = field(init=False, repr=False)

    def __post_init__(self):
        suffix = _alternation(self.currency_suffixes)
        prefix = _alternation(self.currency_prefixes)
        days = _alternation(w for names in self.day_names.values() for w in names)
        time = r"\d{1,2}[:.]\d{2}\s*(?:am|pm)?"
        titles = "|".join(self.staff_titles)
        name_word = r"[A-ZÀ-ÖØ-ÞĀ-Ž][a-zß-öø-ÿā-ž]+"

        compiled = {
            "price": re.compile(rf"(?P<amount>{_AMOUNT})\s*(?P<currency>{suffix})(?![^\W\d_])"),
            "prefixed_price": re.compile(rf"(?<!\d)(?<!\d )(?P<currency>{prefix})\s?(?P<amount>{_AMOUNT})"),
            "labelled_price": re.compile(
                rf"(?<![^\W\d_])(?P<label>[^\W\d_](?:[^\W\d_]|[ \t'&/+\-–])*?)"
                rf"[ \t]*(?:[:–—\-][ \t]*)?"
                rf"(?:(?:cena\s+od|from|od|ab|price)[ \t]+)?"
                rf"(?P<amount>{_AMOUNT})\s*(?P<currency>{suffix})(?![^\W\d_])",
            ),
            "phone": re.compile(
                r"(?<![\w+])(?:\+\d{1,3}[\s.\-]?|00\d{1,3}[\s.\-]?|0)"
                r"(?:\(?\d{1,4}\)?[\s.\-]?){1,2}\d{3}[\s.\-]?\d{2,4}(?!\d)"
            ),
            "email": re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}"),
            "hours": re.compile(
                rf"(?<![^\W\d_])(?:{days})\.?"
                rf"(?:\s*[–\-]\s*(?:{days})\.?)?"
                rf"[\s:\-]*{time}\s*[–\-]\s*{time}",
                re.IGNORECASE,
            ),
            "week_start": re.compile(
                rf"(?<![^\W\d_])(?:{_alternation(self.week_start_names)})(?![^\W\d_])",
                re.IGNORECASE,
            ),
            "staff": re.compile(
                rf"(?:{titles})[ \t]*(?P<name>{name_word}(?:[ \t]+{name_word}){{1,3}})"
                r"(?:[,\s]+(?:Ph\.?D\.?|MBA|CSc\.?|MPH))?"
            ),
            "roles": _compile_all(self.role_keywords),
        }
        for key, value in compiled.items():
            object.__setattr__(self, key, value)
