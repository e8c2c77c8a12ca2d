# ===== IMPORTS & DEPENDENCIES =====
import logging
import re
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from gamedrops.config import HUMBLE_RSS_URL, HUMBLE_STORE_ID, RSS_MIN_IMAGE_SIZE
from gamedrops.core.errors import ItemParseError
from gamedrops.models.deal import CanonicalDeal, PROVIDER_STOREFRONT_RSS, FREE_PRICE
from gamedrops.sources.base import DealSource
from gamedrops.utils.deal_utils import (
    sanitize_html, parse_price, format_price, compute_savings_percent, parse_rfc822
)
from gamedrops.utils.url_utils import extract_product_slug

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

DOLLAR_AMOUNT = re.compile(r'\$\s?(\d[\d,]*(?:\.\d{1,2})?)')
SALE_PHRASE = re.compile(r'\bnow\s+(?:only\s+)?\$\s?(\d[\d,]*(?:\.\d{1,2})?)', re.IGNORECASE)
IMG_TAG = re.compile(r'<img\b[^>]*>', re.IGNORECASE)
IMG_ATTR = re.compile(r'''\b(src|width|height)\s*=\s*["']?([^"'\s>]+)''', re.IGNORECASE)

SIMPLE_FIELDS = ('title', 'link', 'guid', 'description', 'pubDate')


# ===== UTILITY FUNCTIONS =====
def parse_feed(xml_text: str) -> Optional[List[Dict[str, Any]]]:
    """
    Parses RSS text into a list of item dicts. Element text goes under the tag name and
    attributes are kept under '@name' keys (e.g. item['enclosure']['@url']).
    Returns None when the document is not an RSS channel.
    """
    soup = BeautifulSoup(xml_text, "xml")
    channel = soup.find('channel')
    if channel is None:
        return None
    return [_item_to_dict(item) for item in channel.find_all('item')]


def _item_to_dict(item: Tag) -> Dict[str, Any]:
    parsed: Dict[str, Any] = {}
    for field in SIMPLE_FIELDS:
        tag = item.find(field, recursive=False)
        if tag is not None:
            parsed[field] = tag.get_text().strip()

    encoded = item.find('content:encoded') or item.find('encoded')
    if encoded is not None:
        parsed['content:encoded'] = encoded.get_text()

    enclosure = item.find('enclosure')
    if enclosure is not None:
        parsed['enclosure'] = {f"@{key}": value for key, value in enclosure.attrs.items()}

    parsed['category'] = [c.get_text().strip() for c in item.find_all('category') if c.get_text().strip()]
    return parsed


def _image_candidates(html: str) -> List[Dict[str, str]]:
    images = []
    for tag in IMG_TAG.findall(html or ""):
        attrs = {name.lower(): value for name, value in IMG_ATTR.findall(tag)}
        if attrs.get('src'):
            images.append(attrs)
    return images


def _is_reasonably_sized(image: Dict[str, str]) -> bool:
    """Images at least RSS_MIN_IMAGE_SIZE on every declared side. Undeclared sides do not disqualify."""
    for value in (image.get('width'), image.get('height')):
        if value is None:
            continue
        match = re.match(r'\d+', value)
        if not match or int(match.group()) < RSS_MIN_IMAGE_SIZE:
            return False
    return True


def extract_image_url(item: Dict[str, Any]) -> Optional[str]:
    """First reasonably-sized embedded image, then the enclosure, then any image at all."""
    images = _image_candidates(item.get('content:encoded', '')) + _image_candidates(item.get('description', ''))
    for image in images:
        if _is_reasonably_sized(image):
            return image['src']

    enclosure = item.get('enclosure') or {}
    enclosure_type = enclosure.get('@type', '')
    if enclosure.get('@url') and (not enclosure_type or enclosure_type.startswith('image/')):
        return enclosure['@url']

    return images[0]['src'] if images else None


def extract_prices(description_text: str, title: str):
    """
    Returns (original_amount, sale_amount, is_free) from free text.
    The sale price comes from a 'now $X' phrase; the original price is the first other dollar amount.
    """
    sale_match = SALE_PHRASE.search(description_text)
    original = None
    for match in DOLLAR_AMOUNT.finditer(description_text):
        if sale_match and sale_match.start() <= match.start() < sale_match.end():
            continue
        original = parse_price(match.group(1))
        break

    sale = parse_price(sale_match.group(1)) if sale_match else None
    is_free = sale_match is None or 'free' in title.lower() or sale == 0
    return original, sale, is_free


# ===== CORE BUSINESS LOGIC =====
class HumbleRssSource(DealSource):
    """Fetches store promotions from the Humble Store RSS feed."""

    provider = PROVIDER_STOREFRONT_RSS

    def __init__(self, *args, feed_url: str = HUMBLE_RSS_URL, **kwargs):
        super().__init__(*args, **kwargs)
        self.feed_url = feed_url

    async def _fetch_raw_items(self) -> Optional[List[Any]]:
        xml_text = await self._fetch(self.feed_url, is_json=False)
        if not xml_text:
            return None
        items = parse_feed(xml_text)
        if items is None:
            logger.error(f"❌ [{self.name}] Response from {self.feed_url} is not an RSS channel.")
        return items

    def _normalize_item(self, raw_item: Any) -> Optional[CanonicalDeal]:
        if not isinstance(raw_item, dict):
            raise ItemParseError(f"expected a parsed feed item, got {type(raw_item).__name__}")

        title = (raw_item.get('title') or "").strip()
        link = raw_item.get('link') or None
        native_id = raw_item.get('guid') or link
        if not link:
            raise ItemParseError(f"item '{title}' has no link")
        description = sanitize_html(raw_item.get('description', ''))

        original, sale, free = extract_prices(description, title)
        if free:
            deal_price = FREE_PRICE
            original_price = format_price(original) if original is not None else FREE_PRICE
            savings = 100
        else:
            if original is None or sale is None:
                raise ItemParseError(f"no usable price found for '{title}'")
            deal_price = format_price(sale)
            original_price = format_price(original)
            savings = compute_savings_percent(original, sale) or 0

        affiliate_url = self.registry.build_affiliate_url(
            None, HUMBLE_STORE_ID, game_id=extract_product_slug(link), fallback_url=link
        )

        return self._build_deal(
            native_id=native_id,
            title=title,
            original_price=original_price,
            deal_price=deal_price,
            savings_percent=savings,
            retailer_id=HUMBLE_STORE_ID,
            affiliate_url=affiliate_url,
            date_posted=parse_rfc822(raw_item.get('pubDate')) or self._now(),
            description=description,
            image_url=extract_image_url(raw_item),
            categories=raw_item.get('category', []),
        )
