# ===== IMPORTS & DEPENDENCIES =====
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional

import aiohttp

from gamedrops.affiliate.store_registry import StoreRegistry, add_tracking_parameters
from gamedrops.config import CACHE_DIR, DEFAULT_CACHE_TTL
from gamedrops.core.base_client import BaseWebClient
from gamedrops.core.errors import ItemParseError
from gamedrops.models.deal import CanonicalDeal, FREE_PRICE, PROVIDERS, make_deal_id
from gamedrops.utils.deal_utils import generate_slug, to_iso, utc_now

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

# ===== CORE BUSINESS LOGIC =====
class DealSource(BaseWebClient, ABC):
    """
    Base class for provider adapters.

    Subclasses fetch a raw payload and map single records to CanonicalDeal. This class
    folds the per-item results: malformed records are dropped and logged, and a source
    that cannot be fetched at all yields an empty list. `fetch_and_normalize` never raises.
    """

    provider: str = ""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        registry: StoreRegistry,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        now: Optional[Callable[[], datetime]] = None
    ):
        if self.provider not in PROVIDERS:
            raise ValueError(f"{self.__class__.__name__} has unknown provider '{self.provider}'")
        super().__init__(
            cache_dir=os.path.join(CACHE_DIR, self.provider or "default"),
            cache_ttl=cache_ttl,
            session=session
        )
        self.registry = registry
        self._now = now or utc_now

    @property
    def name(self) -> str:
        return self.__class__.__name__

    @abstractmethod
    async def _fetch_raw_items(self) -> Optional[List[Any]]:
        """Returns the provider's raw records, or None when the source is unavailable."""

    @abstractmethod
    def _normalize_item(self, raw_item: Any) -> Optional[CanonicalDeal]:
        """Maps one raw record to a CanonicalDeal. Returns None for records that do not qualify."""

    def normalize_items(self, raw_items: Iterable[Any]) -> List[CanonicalDeal]:
        """Normalizes every record, skipping the ones that fail."""
        deals: List[CanonicalDeal] = []
        skipped = 0
        for raw_item in raw_items:
            try:
                deal = self._normalize_item(raw_item)
            except ItemParseError as e:
                logger.warning(f"⚠️ [{self.name}] Skipping malformed item: {e}")
                skipped += 1
                continue
            except Exception as e:
                logger.warning(f"⚠️ [{self.name}] Unexpected error normalizing item, skipping: {e}", exc_info=True)
                skipped += 1
                continue
            if deal is None:
                skipped += 1
                continue
            deals.append(deal)

        logger.info(f"[{self.name}] Normalized {len(deals)} deals ({skipped} skipped).")
        return deals

    async def fetch_and_normalize(self) -> List[CanonicalDeal]:
        """Fetches the provider and returns its canonical deals. Never raises."""
        logger.info(f"🚀 [{self.name}] Starting fetch...")
        try:
            raw_items = await self._fetch_raw_items()
        except Exception as e:
            logger.error(f"❌ [{self.name}] Source failed: {e}", exc_info=True)
            return []

        if raw_items is None:
            logger.error(f"❌ [{self.name}] Source unavailable. Returning no deals.")
            return []

        logger.info(f"[{self.name}] Received {len(raw_items)} raw items.")
        return self.normalize_items(raw_items)

    def _build_deal(
        self,
        native_id: Any,
        title: Optional[str],
        original_price: str,
        deal_price: str,
        savings_percent: int,
        retailer_id: str,
        affiliate_url: str,
        date_posted: datetime,
        description: str = "",
        image_url: Optional[str] = None,
        expiry_date: Optional[datetime] = None,
        is_upcoming: bool = False,
        categories: Optional[Iterable[str]] = None,
        **metadata: Any
    ) -> CanonicalDeal:
        """
        Assembles a CanonicalDeal and enforces the record invariants:
        non-empty title, 'Free' implies 100% savings, expiry strictly after the posting date.
        """
        native_id = str(native_id).strip() if native_id is not None else ""
        if not native_id:
            raise ItemParseError("missing provider id")
        title = (title or "").strip()
        if not title:
            raise ItemParseError(f"missing title for item '{native_id}'")

        if deal_price == FREE_PRICE:
            savings_percent = 100

        expiry_iso = None
        if expiry_date is not None:
            if expiry_date > date_posted:
                expiry_iso = to_iso(expiry_date)
            else:
                logger.debug(f"[{self.name}] Dropping expiry for '{title}': not after the posting date.")

        return CanonicalDeal(
            id=make_deal_id(self.provider, native_id),
            nativeId=native_id,
            title=title,
            slug=generate_slug(title) or generate_slug(native_id),
            imageUrl=image_url or None,
            description=description or "",
            originalPrice=original_price,
            dealPrice=deal_price,
            savingsPercent=int(savings_percent),
            affiliateUrl=add_tracking_parameters(affiliate_url),
            retailerId=retailer_id,
            retailerName=self.registry.store_name(retailer_id),
            datePosted=to_iso(date_posted),
            expiryDate=expiry_iso,
            provider=self.provider,
            isUpcoming=is_upcoming,
            categories=list(dict.fromkeys(c for c in (categories or []) if c)),
            platform="PC",
            **metadata
        )

