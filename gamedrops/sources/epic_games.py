# ===== IMPORTS & DEPENDENCIES =====
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from gamedrops.config import EPIC_PROMOTIONS_URL, EPIC_FREE_GAMES_URL, EPIC_IMAGE_PRIORITY, EPIC_STORE_ID
from gamedrops.core.errors import ItemParseError
from gamedrops.models.deal import CanonicalDeal, PROVIDER_VENDOR_PROMOTIONS, FREE_PRICE
from gamedrops.sources.base import DealSource
from gamedrops.utils.deal_utils import (
    parse_price, format_price, parse_iso, to_iso, format_display_date
)
from gamedrops.utils.url_utils import clean_epic_slug

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

Offer = Dict[str, Any]


# ===== UTILITY FUNCTIONS =====
def _flatten_offers(groups: Any) -> List[Offer]:
    """promotions.*Offers is a list of groups, each holding its own 'promotionalOffers' list."""
    offers: List[Offer] = []
    for group in groups or []:
        if isinstance(group, dict):
            offers.extend(o for o in group.get('promotionalOffers') or [] if isinstance(o, dict))
    return offers


def _offer_window(offer: Offer) -> Tuple[Optional[datetime], Optional[datetime]]:
    return parse_iso(offer.get('startDate')), parse_iso(offer.get('endDate'))


def pick_image(key_images: Any) -> Optional[str]:
    """Best image by role priority, falling back to the first image that has a url."""
    images = [img for img in key_images or [] if isinstance(img, dict) and img.get('url')]
    for img_type in EPIC_IMAGE_PRIORITY:
        for img in images:
            if img.get('type') == img_type:
                return img['url']
    return images[0]['url'] if images else None


def pick_product_slug(element: Dict[str, Any]) -> Optional[str]:
    """productSlug, then the catalog page mappings, then urlSlug."""
    candidates = [element.get('productSlug')]
    mappings = list((element.get('catalogNs') or {}).get('mappings') or [])
    mappings += element.get('offerMappings') or []
    candidates += [m.get('pageSlug') for m in mappings if isinstance(m, dict)]
    candidates.append(element.get('urlSlug'))
    for candidate in candidates:
        slug = clean_epic_slug(candidate) if isinstance(candidate, str) else None
        if slug and slug != '[]':
            return slug
    return None


def _custom_attribute(element: Dict[str, Any], key: str) -> Optional[str]:
    for attr in element.get('customAttributes') or []:
        if isinstance(attr, dict) and attr.get('key') == key and attr.get('value'):
            return attr['value']
    return None


# ===== CORE BUSINESS LOGIC =====
class EpicGamesSource(DealSource):
    """Fetches current and upcoming promotions from the Epic Games Store promotions feed."""

    provider = PROVIDER_VENDOR_PROMOTIONS

    async def _fetch_raw_items(self) -> Optional[List[Any]]:
        response_data = await self._fetch(EPIC_PROMOTIONS_URL)
        if response_data is None:
            return None

        try:
            games = response_data['data']['Catalog']['searchStore']['elements']
        except (KeyError, TypeError):
            logger.error(f"❌ [{self.name}] Unexpected response shape: missing data.Catalog.searchStore.elements")
            return None
        if not isinstance(games, list):
            logger.error(f"❌ [{self.name}] 'elements' is not a list.")
            return None
        return games

    def _select_offer(self, promotions: Dict[str, Any]) -> Tuple[Optional[Offer], bool]:
        """
        Returns (offer, is_upcoming). An active offer always wins over an upcoming one.
        """
        now = self._now()
        for offer in _flatten_offers(promotions.get('promotionalOffers')):
            start, end = _offer_window(offer)
            if (start is None or start <= now) and (end is None or now < end):
                return offer, False

        for offer in _flatten_offers(promotions.get('upcomingPromotionalOffers')):
            start, _ = _offer_window(offer)
            if start is not None and start > now:
                return offer, True

        return None, False

    def _original_amount(self, element: Dict[str, Any]) -> Optional[float]:
        total_price = (element.get('price') or {}).get('totalPrice') or {}
        cents = total_price.get('originalPrice')
        if isinstance(cents, (int, float)) and not isinstance(cents, bool):
            decimals = (total_price.get('currencyInfo') or {}).get('decimals', 2)
            return parse_price(cents / (10 ** decimals))
        return parse_price((total_price.get('fmtPrice') or {}).get('originalPrice'))

    def _normalize_item(self, raw_item: Any) -> Optional[CanonicalDeal]:
        if not isinstance(raw_item, dict):
            raise ItemParseError(f"expected an object, got {type(raw_item).__name__}")

        title = raw_item.get('title')
        promotions = raw_item.get('promotions')
        if not isinstance(promotions, dict):
            return None

        offer, is_upcoming = self._select_offer(promotions)
        if offer is None:
            logger.debug(f"[{self.name}] '{title}' has no active or upcoming promotion.")
            return None

        start, end = _offer_window(offer)
        discount_percentage = (offer.get('discountSetting') or {}).get('discountPercentage', 0)
        original = self._original_amount(raw_item)

        # discountPercentage is the share of the price still paid; 0 means free
        if not discount_percentage:
            deal_price = FREE_PRICE
            original_price = format_price(original) if original else FREE_PRICE
            savings = 100
        else:
            if not original:
                raise ItemParseError(f"discounted promotion without an original price for '{title}'")
            deal_price = format_price(round(original * discount_percentage / 100, 2))
            original_price = format_price(original)
            savings = max(0, min(100, 100 - int(discount_percentage)))

        display_title = title
        if is_upcoming and title:
            display_title = f"{title} (Coming Soon - {format_display_date(start)})"

        slug = pick_product_slug(raw_item)
        affiliate_url = self.registry.build_affiliate_url(
            None, EPIC_STORE_ID, game_id=slug, fallback_url=EPIC_FREE_GAMES_URL
        )

        categories = [c.get('path') for c in raw_item.get('categories') or [] if isinstance(c, dict)]
        categories += [t.get('name') for t in raw_item.get('tags') or [] if isinstance(t, dict)]
        release_date = parse_iso(raw_item.get('releaseDate') or raw_item.get('effectiveDate'))

        return self._build_deal(
            native_id=raw_item.get('id'),
            title=display_title,
            original_price=original_price,
            deal_price=deal_price,
            savings_percent=savings,
            retailer_id=EPIC_STORE_ID,
            affiliate_url=affiliate_url,
            date_posted=start or self._now(),
            description=self._describe(raw_item.get('description'), deal_price, start, end, is_upcoming),
            image_url=pick_image(raw_item.get('keyImages')),
            expiry_date=end,
            is_upcoming=is_upcoming,
            categories=categories,
            publisher=_custom_attribute(raw_item, 'publisherName') or (raw_item.get('seller') or {}).get('name'),
            developer=_custom_attribute(raw_item, 'developerName'),
            releaseDate=to_iso(release_date) if release_date else None,
        )

    @staticmethod
    def _describe(base: Optional[str], deal_price: str, start: Optional[datetime],
                  end: Optional[datetime], is_upcoming: bool) -> str:
        """Base description followed by the promotion window."""
        text = re.sub(r'\s+', ' ', base or '').strip()
        label = "Free" if deal_price == FREE_PRICE else f"On sale for {deal_price}"
        if start and end:
            verb = "starting" if is_upcoming else "from"
            window = f"{label} {verb} {format_display_date(start)} until {format_display_date(end)}."
        elif end:
            window = f"{label} until {format_display_date(end)}."
        else:
            window = ""
        return f"{text} {window}".strip()
