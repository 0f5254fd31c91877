import copy
import logging
import re
from typing import List, Optional

from bs4 import BeautifulSoup, Tag

from .models import Page, PriceMention, RawPage
from .patterns import CrawlPatterns, ExtractionPatterns
from .urls import normalize, same_origin

logger = logging.getLogger(__name__)

MAX_MAIN_TEXT_CHARS = 50000
# a specific container with at least this much text wins over later selectors
GOOD_CONTENT_CHARS = 500
MIN_CONTENT_CHARS = 100

_NOISE_SELECTORS = (
    "script, style, noscript, svg, iframe, template, header nav, footer nav",
    '[class*="cookie"], [class*="popup"], [class*="modal"], [class*="banner"], [aria-hidden="true"]',
    '[role="navigation"], [role="banner"]',
)


def clean_text(text: str) -> str:
    text = text.replace("\u00a0", " ")
    text = re.sub(r"\t+", " ", text)
    text = re.sub(r" +", " ", text)
    text = re.sub(r"\n +", "\n", text)
    text = re.sub(r" +\n", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def _element_text(element: Tag) -> str:
    clone = copy.copy(element)
    for selector in _NOISE_SELECTORS:
        for noise in clone.select(selector):
            noise.decompose()
    return clean_text(clone.get_text("\n"))


def _amount_text(amount: str, currency: str, prefixed: bool = False) -> str:
    amount = amount.replace("\u00a0", " ").strip()
    if prefixed:
        return f"{currency}{amount}"
    if currency.isalpha():
        return f"{amount} {currency}"
    return f"{amount}{currency}"


class SignalExtractor:
    """Turns a rendered HTML snapshot into a Page record."""

    def __init__(self, patterns: Optional[ExtractionPatterns] = None,
                 crawl_patterns: Optional[CrawlPatterns] = None):
        self.patterns = patterns or ExtractionPatterns()
        self.crawl_patterns = crawl_patterns or CrawlPatterns.default()

    def extract(self, raw: RawPage) -> Page:
        soup = BeautifulSoup(raw.html, "html.parser")
        main_text = self.main_text(soup)
        body = soup.body or soup
        page_text = clean_text(body.get_text("\n"))

        title_tag = soup.find("title")
        h1_tag = soup.find("h1")
        meta = soup.find("meta", attrs={"name": "description"})

        page = Page(
            url=raw.url,
            title=clean_text(title_tag.get_text()) if title_tag else "",
            h1=clean_text(h1_tag.get_text(" ")) if h1_tag else "",
            description=(meta.get("content") or "").strip() if meta else "",
            main_text=main_text[:MAX_MAIN_TEXT_CHARS],
            prices=tuple(self.prices(soup)),
            phones=tuple(self.phones(page_text)),
            emails=tuple(self.emails(page_text)),
            hours=tuple(self.hours(page_text)),
            outbound_links=tuple(self.links(soup, raw.final_url or raw.url)),
        )
        if page.is_empty:
            logger.info(f"No usable signals extracted from {raw.url}")
        return page

    def main_text(self, soup: BeautifulSoup) -> str:
        """Longest content container, preferring a specific one with enough text."""
        best = ""
        for selector in self.patterns.content_selectors:
            element = soup.select_one(selector)
            if element is None:
                continue
            content = _element_text(element)
            if len(content) > len(best):
                best = content
            if selector != "body" and len(content) > GOOD_CONTENT_CHARS:
                best = content
                break

        if len(best) < MIN_CONTENT_CHARS and soup.body is not None:
            fallback = _element_text(soup.body)
            if len(fallback) > len(best):
                best = fallback
        return best

    def _scan_text(self, soup: BeautifulSoup) -> str:
        for selector in ("main", "article", ".content", "#content", "body"):
            element = soup.select_one(selector)
            if element is not None:
                return clean_text(element.get_text("\n"))
        return clean_text(soup.get_text("\n"))

    def prices(self, soup: BeautifulSoup) -> List[PriceMention]:
        found: List[PriceMention] = []
        seen = set()

        def add(mention: PriceMention):
            key = (mention.raw_text, mention.amount_text)
            if key not in seen:
                seen.add(key)
                found.append(mention)

        # structured rows: price tables and price-classed blocks
        for row in soup.select(self.patterns.price_row_selectors):
            text = re.sub(r"\s+", " ", row.get_text(" ")).strip()
            match = self.patterns.price.search(text)
            if not match:
                continue
            label = re.split(r"\s*[:–—\-|]\s*|\d", text, maxsplit=1)[0].strip()
            add(PriceMention(
                raw_text=text[:200],
                amount_text=_amount_text(match.group("amount"), match.group("currency")),
                label=label if 3 < len(label) < 100 else None,
            ))

        # inline "label: amount" mentions
        text = self._scan_text(soup)
        for match in self.patterns.labelled_price.finditer(text):
            label = self._clean_label(match.group("label"))
            if not label:
                continue
            amount = _amount_text(match.group("amount"), match.group("currency"))
            add(PriceMention(raw_text=f"{label}: {amount}", amount_text=amount, label=label))

        # unlabelled amounts written with a leading currency sign
        for match in self.patterns.prefixed_price.finditer(text):
            amount = _amount_text(match.group("amount"), match.group("currency"), prefixed=True)
            start = max(0, match.start() - 60)
            context = text[start:match.end()].split("\n")[-1].strip()
            add(PriceMention(raw_text=context, amount_text=amount))

        return found

    @staticmethod
    def _clean_label(label: str) -> Optional[str]:
        label = re.sub(r"^\d+[.)]\s*", "", label or "")
        label = re.sub(r"[\s:–—\-/&+']+$", "", label)
        label = re.sub(r"\s+", " ", label).strip()
        if 3 < len(label) < 100:
            return label
        return None

    def phones(self, text: str) -> List[str]:
        found = []
        for match in self.patterns.phone.finditer(text):
            phone = re.sub(r"\s+", " ", match.group(0)).strip()
            if phone not in found:
                found.append(phone)
        return found

    def emails(self, text: str) -> List[str]:
        found = []
        for match in self.patterns.email.finditer(text):
            email = match.group(0).rstrip(".")
            if email not in found:
                found.append(email)
        return found

    def hours(self, text: str) -> List[str]:
        found = []
        for match in self.patterns.hours.finditer(text):
            line = re.sub(r"\s+", " ", match.group(0)).strip()
            if line not in found:
                found.append(line)
        return found

    def links(self, soup: BeautifulSoup, page_url: str) -> List[str]:
        """Same-origin links, navigation containers first."""
        nav_hrefs = [a.get("href") for a in soup.select(self.patterns.nav_link_selectors)]
        all_hrefs = [a.get("href") for a in soup.select("a[href]")]

        links: List[str] = []
        seen = set()
        for href in nav_hrefs + all_hrefs:
            url = normalize(href, page_url, self.crawl_patterns.tracking_params)
            if not url or url in seen or not same_origin(page_url, url):
                continue
            seen.add(url)
            links.append(url)
        return links
