# ===== IMPORTS & DEPENDENCIES =====
import re
import math
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from bs4 import BeautifulSoup

from gamedrops.config import SLUG_MAX_LENGTH
from gamedrops.models.deal import FREE_PRICE

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

_PRICE_CLEANUP = re.compile(r'[^\d.\-]')

# ===== UTILITY FUNCTIONS =====

def generate_slug(title: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Converts a title into a URL-friendly slug:
    lowercase, runs of non-alphanumerics become one hyphen, no leading/trailing hyphens,
    capped at `max_length`.
    """
    if not title:
        return ""
    slug = re.sub(r'[^a-z0-9]+', '-', title.lower()).strip('-')
    return slug[:max_length].rstrip('-')


def sanitize_html(html_text: str) -> str:
    """
    Removes all HTML tags from a string, returning only the clean text.
    """
    if not html_text: return ""
    soup = BeautifulSoup(html_text, "lxml")
    text = soup.get_text(separator=' ', strip=True)
    return re.sub(r'\s+', ' ', text).strip()


def parse_price(value: Any) -> Optional[float]:
    """
    Parses a provider price ('12.99', '$12.99', 12.99, '1,299.00') into a float.
    Returns None for missing, negative or non-numeric values, never NaN.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        amount = float(value)
    else:
        cleaned = _PRICE_CLEANUP.sub('', str(value))
        if not cleaned:
            return None
        try:
            amount = float(cleaned)
        except ValueError:
            return None
    if math.isnan(amount) or math.isinf(amount) or amount < 0:
        return None
    return amount


def format_price(amount: float) -> str:
    """Formats an amount as '$X.XX', or 'Free' when it is zero."""
    if amount <= 0:
        return FREE_PRICE
    return f"${amount:.2f}"


def compute_savings_percent(original: Optional[float], sale: Optional[float]) -> Optional[int]:
    """round((original - sale) / original * 100), clamped to 0..100. None when it cannot be derived."""
    if original is None or sale is None or original <= 0:
        return None
    percent = round((original - sale) / original * 100)
    return max(0, min(100, percent))


def clamp_percent(value: Any) -> Optional[int]:
    """Coerces a provider-supplied percentage ('48.012', 48) into an int in 0..100."""
    amount = parse_price(value)
    if amount is None:
        return None
    return max(0, min(100, round(amount)))


def parse_int(value: Any) -> Optional[int]:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


# --- Dates ---

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serializes a datetime as an ISO-8601 UTC string with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec='milliseconds')


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parses ISO-8601 strings, including the 'Z' suffix the vendor API uses."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace('Z', '+00:00'))
    except ValueError:
        logger.debug(f"[parse_iso] Unparseable timestamp: '{value}'")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_rfc822(value: Optional[str]) -> Optional[datetime]:
    """Parses RSS pubDate values such as 'Tue, 10 Jun 2025 17:00:00 +0000'."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        logger.debug(f"[parse_rfc822] Unparseable pubDate: '{value}'")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_display_date(value: datetime) -> str:
    """'Jun 12, 2025' style date used in titles and descriptions."""
    return f"{value.strftime('%b')} {value.day}, {value.year}"
