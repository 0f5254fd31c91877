import asyncio
import json
import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_deepseek import ChatDeepSeek
from langchain_google_genai import ChatGoogleGenerativeAI
from pydantic import ValidationError

from .config import CrawlerSettings
from .errors import LlmExtractionFailure
from .models import BusinessProfile, BusinessProfileDraft, Page
from .retry import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"

SYSTEM_PROMPT = "You extract structured data from website content. Always respond with valid JSON only, no markdown."

EXTRACTION_PROMPT = """You are a data extraction assistant. Analyze the following scraped website content and extract structured information about the business.

IMPORTANT RULES:
- Only extract information that is EXPLICITLY stated in the content
- If information is not found, use null for strings and [] for lists
- For prices, include the currency symbol (€, $, Kč, etc.) and "from" if it's a starting price
- For opening hours, preserve the exact format from the website
- Extract ALL products/services with prices you can find
- Extract ALL team/staff members with their roles if mentioned
- This could be ANY type of business: car dealership, e-commerce, SaaS, restaurant, clinic, salon, etc.
- Clean up concatenated text (e.g. "Configure vehicleLearn moreGLE" -> just "GLE")
- Use the category field for a service's category or key specifications

Return a JSON object with this exact structure:
{
  "name": "The official name of the business (not taglines or slogans)",
  "address": "Full address if found",
  "phone": "Primary phone number",
  "email": "Primary email",
  "opening_hours": "Opening hours exactly as stated, preserve formatting",
  "services": [
    {"name": "Clean product/service name", "price": "Price with currency (use 'from X €' for starting prices)", "category": "Category or key specs"}
  ],
  "staff": [
    {"name": "Full name with title if any", "role": "Their role/specialty"}
  ],
  "about": "Short description of what the business is and does",
  "benefits": ["Key selling points or differentiators"],
  "faq": [
    {"question": "Question stated on the site", "answer": "Its answer"}
  ],
  "additional_info": "Any other important business information (shipping, policies, parking, etc.)"
}

SCRAPED CONTENT:
"""


def extract_json_from_markdown(text: str) -> Dict[str, Any]:
    """Extract a JSON object from a model reply, tolerating code fences.

    Raises LlmExtractionFailure when no JSON object can be recovered.
    """
    json_match = re.search(r"```(?:json)?\s*\n(.*?)\n\s*```", text or "", re.DOTALL)
    if json_match:
        json_str = json_match.group(1).strip()
    else:
        json_str = (text or "").strip().lstrip('`').rstrip('`').strip()

    try:
        result = json.loads(json_str)
    except json.JSONDecodeError as e:
        # Attempt cleanup: find first '{' and last '}'
        start_brace = json_str.find('{')
        end_brace = json_str.rfind('}')
        if start_brace == -1 or end_brace <= start_brace:
            raise LlmExtractionFailure(f"Failed to parse JSON: {e}") from e
        try:
            result = json.loads(json_str[start_brace:end_brace + 1])
        except json.JSONDecodeError as final_e:
            raise LlmExtractionFailure(f"Failed to parse JSON after cleanup: {final_e}") from final_e
        logger.info("Successfully parsed JSON after basic cleanup.")

    if not isinstance(result, dict):
        raise LlmExtractionFailure(f"Expected a JSON object, got {type(result).__name__}")
    return result


def build_chat_model(settings: CrawlerSettings):
    """LangChain chat model for ``settings.llm_mode``, or None when unconfigured."""
    mode = settings.llm_mode
    if mode == "google":
        if settings.google_api_key:
            logger.info("Using Google Gemini LLM.")
            return ChatGoogleGenerativeAI(
                model=settings.google_model,
                google_api_key=settings.google_api_key,
                temperature=0.1,
            )
        logger.warning("LLM_MODE set to 'google' but GOOGLE_API_KEY is not set.")
    elif mode == "deepseek":
        if settings.deepseek_api_key:
            logger.info("Using DeepSeek LLM.")
            return ChatDeepSeek(
                model=settings.deepseek_model,
                temperature=0.1,
                api_key=settings.deepseek_api_key,
                api_base=settings.deepseek_api_base,
            )
        logger.warning("LLM_MODE set to 'deepseek' but DEEPSEEK_API_KEY is not set.")
    else:
        logger.warning(f"Invalid LLM_MODE specified: '{mode}'. Use 'google' or 'deepseek'.")
    return None


def build_content(pages: Sequence[Page], budget: int) -> str:
    """Page blocks, richest first, until ``budget`` characters are used.

    The page that would overflow is truncated to fit rather than skipped.
    """
    blocks: List[str] = []
    used = 0
    ordered = sorted(pages, key=lambda p: len(p.main_text), reverse=True)

    prices = [p.raw_text for page in pages for p in page.prices]
    price_block = "=== EXTRACTED PRICES ===\n" + "\n".join(dict.fromkeys(prices)) if prices else ""

    for page in ordered:
        separator = len(BLOCK_SEPARATOR) if blocks else 0
        remaining = budget - used - separator
        if remaining <= 0:
            break
        block = f"=== {page.title or page.h1 or 'Page'} ===\nURL: {page.url}\n{page.main_text}"
        if len(block) > remaining:
            block = block[:remaining]
        blocks.append(block)
        used += separator + len(block)

    if price_block:
        remaining = budget - used - len(BLOCK_SEPARATOR)
        if remaining > 0:
            blocks.append(price_block[:remaining])

    return BLOCK_SEPARATOR.join(blocks)


class LlmExtractor:
    """Second, richer draft from a single structured-extraction request."""

    def __init__(self, settings: Optional[CrawlerSettings] = None, llm=None):
        self.settings = settings or CrawlerSettings()
        self.llm = llm if llm is not None else build_chat_model(self.settings)
        self.policy = RetryPolicy.single(self.settings.llm_timeout_s)

    async def extract(self, pages: Sequence[Page]) -> Optional[BusinessProfileDraft]:
        if self.llm is None:
            logger.info("No LLM configured, skipping LLM extraction")
            return None
        if not pages:
            return None

        content = build_content(pages, self.settings.llm_char_budget)
        messages = [SystemMessage(content=SYSTEM_PROMPT), HumanMessage(content=EXTRACTION_PROMPT + content)]

        try:
            logger.info(f"Extracting data with LLM ({len(content)} chars from {len(pages)} pages)...")
            reply = await call_with_retry(
                lambda timeout, _attempt: asyncio.wait_for(self.llm.ainvoke(messages), timeout),
                self.policy,
                label="LLM extraction",
            )
            draft = self.parse(getattr(reply, "content", reply))
        except asyncio.TimeoutError:
            logger.error("LLM extraction timed out")
            return None
        except LlmExtractionFailure as e:
            logger.error(f"LLM extraction error: {e}")
            return None
        except Exception as e:
            logger.exception(f"LLM extraction error: {e}")
            return None

        logger.info(f"LLM extracted: {draft.name}, {len(draft.services)} services, {len(draft.staff)} staff")
        return draft

    @staticmethod
    def parse(content: Any) -> BusinessProfileDraft:
        if isinstance(content, list):
            # some chat models return content parts
            content = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
        if not content:
            raise LlmExtractionFailure("No response content from LLM")

        data = extract_json_from_markdown(content)
        hours = data.pop("opening_hours", data.get("hours"))
        if isinstance(hours, dict):
            hours = "\n".join(f"{day}: {value}" for day, value in hours.items())
        elif isinstance(hours, list):
            hours = "\n".join(str(line) for line in hours)
        data["hours"] = hours
        data["services"] = [s for s in data.get("services") or [] if isinstance(s, dict) and s.get("name")]
        data["staff"] = [s for s in data.get("staff") or [] if isinstance(s, dict) and s.get("name")]
        data["faq"] = [f for f in data.get("faq") or [] if isinstance(f, dict) and f.get("question")]
        benefits = data.get("benefits")
        if isinstance(benefits, list):
            data["benefits"] = [str(b) for b in benefits if b]

        known = set(BusinessProfile.model_fields) - {"free_text_excerpt", "source_pages"}
        try:
            return BusinessProfile(**{k: v for k, v in data.items() if k in known})
        except ValidationError as e:
            raise LlmExtractionFailure(f"LLM response did not match the profile schema: {e}") from e
