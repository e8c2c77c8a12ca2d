"""Pytest configuration and shared fixtures."""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional
from unittest.mock import MagicMock

import aiohttp
import pytest

from gamedrops.affiliate.store_registry import StoreRegistry
from gamedrops.core.database import DocumentStore
from gamedrops.models.deal import CanonicalDeal, FREE_PRICE
from gamedrops.sources.base import DealSource

FIXED_NOW = datetime(2025, 6, 12, 12, 0, 0, tzinfo=timezone.utc)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def now():
    return lambda: FIXED_NOW


@pytest.fixture
def registry() -> StoreRegistry:
    return StoreRegistry()


@pytest.fixture
def session():
    """Adapters never touch the session in tests because `_fetch` is patched."""
    return MagicMock(spec=aiohttp.ClientSession)


@pytest.fixture
def make_source(session, registry, now):
    """Builds an adapter with caching disabled and a fixed clock."""
    def _make(source_cls, **kwargs):
        return source_cls(session, registry, cache_ttl=0, now=now, **kwargs)
    return _make


@pytest.fixture
def store(tmp_path, now) -> DocumentStore:
    return DocumentStore(str(tmp_path / "deals.db"), now=now)


def make_deal(
    native_id: str,
    title: Optional[str] = None,
    deal_price: str = "$5.00",
    savings: int = 50,
    date_posted: str = "2025-06-12T00:00:00.000+00:00",
    provider: str = "discount-api",
    image_url: Optional[str] = "https://img.example.com/cover.jpg",
    **extra
) -> CanonicalDeal:
    title = title or f"Game {native_id}"
    deal: CanonicalDeal = {
        'id': f"{provider}:{native_id}",
        'nativeId': native_id,
        'title': title,
        'slug': title.lower().replace(' ', '-'),
        'imageUrl': image_url,
        'description': "",
        'originalPrice': "$10.00",
        'dealPrice': deal_price,
        'savingsPercent': 100 if deal_price == FREE_PRICE else savings,
        'affiliateUrl': "https://www.cheapshark.com/redirect?dealID=x",
        'retailerId': "1",
        'retailerName': "Steam",
        'datePosted': date_posted,
        'expiryDate': None,
        'provider': provider,
        'isUpcoming': False,
        'categories': [],
    }
    deal.update(extra)
    return deal


class FakeSource(DealSource):
    """A source that returns canned deals, raises, or hangs."""

    provider = "fake"

    def __init__(self, deals: Optional[List[CanonicalDeal]] = None, error: Optional[Exception] = None,
                 delay: float = 0.0, name: str = "FakeSource"):
        # No network client is needed, so BaseWebClient setup is skipped
        self._deals = deals or []
        self._error = error
        self._delay = delay
        self._name = name
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def _fetch_raw_items(self):
        return self._deals

    def _normalize_item(self, raw_item):
        return raw_item

    async def fetch_and_normalize(self) -> List[CanonicalDeal]:
        self.calls += 1
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return list(self._deals)


# ============================================================================
# SAMPLE PAYLOADS
# ============================================================================

@pytest.fixture
def cheapshark_payload():
    return [
        {
            "internalName": "HOLLOWKNIGHT",
            "title": "Hollow Knight",
            "dealID": "abc123",
            "storeID": "1",
            "gameID": "145",
            "salePrice": "7.49",
            "normalPrice": "14.99",
            "savings": "50.033356",
            "metacriticScore": "87",
            "steamRatingPercent": "97",
            "steamRatingCount": "250000",
            "steamAppID": "367520",
            "releaseDate": 1487894400,
            "lastChange": 1749686400,
            "thumb": "https://cdn.example.com/hk.jpg",
        },
        {
            "title": "Broken Record",
            "dealID": "no-price",
            "storeID": "1",
            "normalPrice": "19.99",
            "thumb": "https://cdn.example.com/broken.jpg",
        },
        {
            "title": "Barely On Sale",
            "dealID": "small",
            "storeID": "3",
            "salePrice": "9.49",
            "normalPrice": "9.99",
            "thumb": "https://cdn.example.com/small.jpg",
        },
        {
            "title": "Giveaway Game",
            "dealID": "free1",
            "storeID": "7",
            "salePrice": "0.00",
            "normalPrice": "19.99",
            "savings": "100.000000",
            "lastChange": 1749600000,
            "thumb": "https://cdn.example.com/free.jpg",
        },
    ]


HUMBLE_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/">
  <channel>
    <title>Humble Store</title>
    <item>
      <title>Celeste is on sale</title>
      <link>https://www.humblebundle.com/store/celeste</link>
      <guid>humble-celeste</guid>
      <pubDate>Tue, 10 Jun 2025 17:00:00 +0000</pubDate>
      <description><![CDATA[<p>Celeste, normally $19.99, is now $4.99 for a limited time.</p>]]></description>
      <content:encoded><![CDATA[<img src="https://cdn.example.com/pixel.gif" width="1" height="1"><img src="https://cdn.example.com/celeste.jpg" width="616" height="353">]]></content:encoded>
      <category>Platformer</category>
      <category>Indie</category>
    </item>
    <item>
      <title>FREE: Tiny Game Giveaway</title>
      <link>https://www.humblebundle.com/store/tiny-game</link>
      <guid>humble-tiny</guid>
      <pubDate>Wed, 11 Jun 2025 17:00:00 +0000</pubDate>
      <description><![CDATA[Grab Tiny Game (usually $9.99) and keep it forever.]]></description>
      <enclosure url="https://cdn.example.com/tiny.png" type="image/png" length="1000"/>
    </item>
    <item>
      <title>No link here</title>
      <guid>humble-broken</guid>
      <description>Nothing is now $1.00</description>
    </item>
  </channel>
</rss>
"""


@pytest.fixture
def humble_rss_xml() -> str:
    return HUMBLE_RSS


def epic_element(title, offer_id, promotions, slug=None, original_cents=2999, key_images=None, **extra):
    element = {
        "title": title,
        "id": offer_id,
        "description": f"{title} description.",
        "productSlug": slug,
        "keyImages": key_images if key_images is not None else [
            {"type": "Thumbnail", "url": f"https://cdn.example.com/{offer_id}-thumb.jpg"},
            {"type": "OfferImageWide", "url": f"https://cdn.example.com/{offer_id}-wide.jpg"},
        ],
        "price": {
            "totalPrice": {
                "originalPrice": original_cents,
                "discountPrice": 0,
                "currencyInfo": {"decimals": 2},
            }
        },
        "promotions": promotions,
    }
    element.update(extra)
    return element


def epic_offer(start, end, discount_percentage=0):
    return {"promotionalOffers": [{
        "startDate": start,
        "endDate": end,
        "discountSetting": {"discountType": "PERCENTAGE", "discountPercentage": discount_percentage},
    }]}


@pytest.fixture
def epic_payload():
    return {
        "data": {
            "Catalog": {
                "searchStore": {
                    "elements": [
                        epic_element(
                            "Free Now Game", "epic-1",
                            {"promotionalOffers": [epic_offer("2025-06-05T15:00:00.000Z", "2025-06-19T15:00:00.000Z")],
                             "upcomingPromotionalOffers": []},
                            slug="free-now-game/home",
                            customAttributes=[{"key": "publisherName", "value": "Good Publisher"}],
                            tags=[{"name": "Action"}],
                        ),
                        epic_element(
                            "Next Week Game", "epic-2",
                            {"promotionalOffers": [],
                             "upcomingPromotionalOffers": [epic_offer("2025-06-19T15:00:00.000Z", "2025-06-26T15:00:00.000Z")]},
                            slug=None,
                            catalogNs={"mappings": [{"pageSlug": "next-week-game", "pageType": "productHome"}]},
                        ),
                        epic_element(
                            "Half Price Game", "epic-3",
                            {"promotionalOffers": [epic_offer("2025-06-05T15:00:00.000Z", "2025-06-19T15:00:00.000Z", 50)]},
                            slug="half-price-game", original_cents=4000,
                        ),
                        epic_element("Not Promoted", "epic-4", None),
                    ]
                }
            }
        }
    }
