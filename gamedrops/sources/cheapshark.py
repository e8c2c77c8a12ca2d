# ===== IMPORTS & DEPENDENCIES =====
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from gamedrops.config import CHEAPSHARK_DEALS_URL, CHEAPSHARK_QUERY_DEFAULTS, MIN_SAVINGS_PERCENT, STEAM_STORE_ID
from gamedrops.core.errors import ItemParseError
from gamedrops.models.deal import CanonicalDeal, PROVIDER_DISCOUNT_API, FREE_PRICE
from gamedrops.sources.base import DealSource
from gamedrops.utils.deal_utils import (
    parse_price, format_price, compute_savings_percent, clamp_percent, parse_int, to_iso
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


def _from_unix(value: Any) -> Optional[datetime]:
    seconds = parse_int(value)
    if not seconds or seconds <= 0:
        return None
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


# ===== CORE BUSINESS LOGIC =====
class CheapSharkSource(DealSource):
    """Fetches discounted games from the CheapShark deals API."""

    provider = PROVIDER_DISCOUNT_API

    def __init__(self, *args, query: Optional[Dict[str, str]] = None,
                 min_savings_percent: int = MIN_SAVINGS_PERCENT, **kwargs):
        super().__init__(*args, **kwargs)
        self.query = {**CHEAPSHARK_QUERY_DEFAULTS, **(query or {})}
        self.min_savings_percent = min_savings_percent

    async def _fetch_raw_items(self) -> Optional[List[Any]]:
        data = await self._fetch(CHEAPSHARK_DEALS_URL, params=self.query)
        if data is None:
            return None
        if not isinstance(data, list):
            logger.error(f"❌ [{self.name}] Expected a JSON array of deals, got {type(data).__name__}.")
            return None
        return data

    def _normalize_item(self, raw_item: Any) -> Optional[CanonicalDeal]:
        if not isinstance(raw_item, dict):
            raise ItemParseError(f"expected an object, got {type(raw_item).__name__}")

        deal_id = raw_item.get('dealID')
        title = raw_item.get('title')
        normal = parse_price(raw_item.get('normalPrice'))
        sale = parse_price(raw_item.get('salePrice'))
        if sale is None or normal is None:
            raise ItemParseError(f"missing or invalid price for deal '{deal_id}'")

        deal_price = format_price(sale)
        original_price = format_price(normal)
        savings = compute_savings_percent(normal, sale)
        if savings is None:
            savings = clamp_percent(raw_item.get('savings')) or 0

        if deal_price != FREE_PRICE and savings < self.min_savings_percent:
            logger.debug(f"[{self.name}] Skipping '{title}': {savings}% is below the {self.min_savings_percent}% threshold.")
            return None

        retailer_id = str(raw_item.get('storeID') or STEAM_STORE_ID).strip()
        store_name = self.registry.store_name(retailer_id)
        steam_app_id = raw_item.get('steamAppID')
        game_id = steam_app_id if retailer_id == STEAM_STORE_ID else None

        affiliate_url = self.registry.build_affiliate_url(deal_id, retailer_id, game_id=game_id)
        date_posted = _from_unix(raw_item.get('lastChange')) or self._now()
        release_date = _from_unix(raw_item.get('releaseDate'))
        shown_savings = 100 if deal_price == FREE_PRICE else savings

        return self._build_deal(
            native_id=deal_id,
            title=title,
            original_price=original_price,
            deal_price=deal_price,
            savings_percent=savings,
            retailer_id=retailer_id,
            affiliate_url=affiliate_url,
            date_posted=date_posted,
            description=(
                f"{title} is now available on {store_name} for {deal_price}! "
                f"Save {shown_savings}% off the original price of {original_price}."
            ),
            image_url=raw_item.get('thumb'),
            metacriticScore=parse_int(raw_item.get('metacriticScore')),
            steamRatingPercent=parse_int(raw_item.get('steamRatingPercent')),
            steamRatingCount=parse_int(raw_item.get('steamRatingCount')),
            releaseDate=to_iso(release_date) if release_date else None,
        )
