# ===== IMPORTS & DEPENDENCIES =====
import logging
from typing import Dict, Optional
from urllib.parse import urlparse, parse_qs, quote, unquote

from gamedrops.models.store import StoreConfig
from gamedrops.config import (
    REDIRECT_URL_TEMPLATE, TRACKING_SOURCE, TRACKING_MEDIUM, TRACKING_CAMPAIGN,
    HUMBLE_PARTNER_ID, EPIC_CREATOR_CODE, GMG_AFFILIATE_ID
)

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)

DEFAULT_STORE_CONFIG: StoreConfig = {
    "name": "Unknown Store",
    "urlTemplate": REDIRECT_URL_TEMPLATE,
    "requiresDealId": True,
    "requiresStoreId": False,
    "isDirectLink": False,
}


def _redirect_store(name: str) -> StoreConfig:
    """A retailer that is only reachable through the deal redirect."""
    return {
        "name": name,
        "urlTemplate": REDIRECT_URL_TEMPLATE,
        "requiresDealId": True,
        "requiresStoreId": False,
        "isDirectLink": False,
    }


# Keyed by CheapShark store id, so discount-API records resolve without translation.
STORE_CONFIGS: Dict[str, StoreConfig] = {
    "1": {
        "name": "Steam",
        "urlTemplate": "https://store.steampowered.com/app/{gameId}",
        "requiresDealId": False,
        "requiresStoreId": False,
        "isDirectLink": True,
    },
    "2": _redirect_store("GamersGate"),
    "3": {
        "name": "GreenManGaming",
        "urlTemplate": "https://www.greenmangaming.com/games/{gameId}",
        "requiresDealId": True,
        "requiresStoreId": True,
        "isDirectLink": False,
        "affiliateParam": "tap_a",
        "affiliateCode": GMG_AFFILIATE_ID,
    },
    "4": _redirect_store("Amazon"),
    "5": _redirect_store("GameStop"),
    "6": _redirect_store("Direct2Drive"),
    "7": {
        "name": "GOG",
        "urlTemplate": "https://www.gog.com/game/{gameId}",
        "requiresDealId": False,
        "requiresStoreId": False,
        "isDirectLink": True,
    },
    "8": _redirect_store("Origin"),
    "11": {
        "name": "Humble Store",
        "urlTemplate": "https://www.humblebundle.com/store/{gameId}",
        "requiresDealId": False,
        "requiresStoreId": False,
        "isDirectLink": True,
        "affiliateParam": "partner",
        "affiliateCode": HUMBLE_PARTNER_ID,
    },
    "13": _redirect_store("Uplay"),
    "15": {
        "name": "Fanatical",
        "urlTemplate": "https://www.fanatical.com/en/game/{gameId}",
        "requiresDealId": True,
        "requiresStoreId": True,
        "isDirectLink": False,
    },
    "21": _redirect_store("WinGameStore"),
    "23": _redirect_store("GameBillet"),
    "24": _redirect_store("Voidu"),
    "25": {
        "name": "Epic Games Store",
        "urlTemplate": "https://store.epicgames.com/en-US/p/{gameId}",
        "requiresDealId": False,
        "requiresStoreId": False,
        "isDirectLink": True,
        "affiliateParam": "epic_creator_id",
        "affiliateCode": EPIC_CREATOR_CODE,
    },
    "27": _redirect_store("Gamesplanet"),
    "28": _redirect_store("Gamesload"),
    "29": _redirect_store("2Game"),
    "30": _redirect_store("IndieGala"),
    "31": _redirect_store("Blizzard Shop"),
    "33": _redirect_store("DLGamer"),
    "34": _redirect_store("Noctre"),
    "35": _redirect_store("DreamGame"),
}


# ===== UTILITY FUNCTIONS =====
def add_tracking_parameters(url: str, campaign: str = TRACKING_CAMPAIGN) -> str:
    """
    Appends utm_source/utm_medium/utm_campaign to an outbound URL.
    URLs that already carry a utm_source are returned unchanged, so applying it twice is harmless.
    """
    if not url:
        return url
    parsed = urlparse(url)
    if 'utm_source' in parse_qs(parsed.query):
        return url

    separator = '&' if parsed.query else '?'
    return (
        f"{url}{separator}utm_source={quote(TRACKING_SOURCE)}"
        f"&utm_medium={quote(TRACKING_MEDIUM)}&utm_campaign={quote(campaign)}"
    )


# ===== CORE BUSINESS LOGIC =====
class StoreRegistry:
    """Resolves retailer ids to their linking rules and builds affiliate URLs."""

    def __init__(self, configs: Optional[Dict[str, StoreConfig]] = None,
                 default: Optional[StoreConfig] = None):
        self._configs = dict(STORE_CONFIGS if configs is None else configs)
        self._default = default or DEFAULT_STORE_CONFIG

    def resolve(self, retailer_id: Optional[str]) -> StoreConfig:
        """Returns the retailer's configuration, or the default one. Never raises."""
        if retailer_id is None:
            return self._default

        normalized_id = str(retailer_id).strip()
        if not normalized_id:
            return self._default

        config = self._configs.get(normalized_id)
        if config is None:
            logger.debug(f"[{self.__class__.__name__}] No configuration for retailer '{normalized_id}', using default.")
            return self._default
        return config

    def store_name(self, retailer_id: Optional[str]) -> str:
        return self.resolve(retailer_id)["name"]

    def supports_direct_link(self, retailer_id: Optional[str]) -> bool:
        return bool(self.resolve(retailer_id).get("isDirectLink"))

    def _redirect_url(self, deal_id: Optional[str], fallback_url: Optional[str]) -> str:
        # A redirect without a deal id points nowhere
        if not deal_id and fallback_url:
            return fallback_url
        # CheapShark deal ids arrive percent-encoded already
        return REDIRECT_URL_TEMPLATE.format(deal_id=quote(unquote(deal_id or ""), safe=''))

    def build_affiliate_url(
        self,
        deal_id: Optional[str],
        retailer_id: Optional[str],
        game_id: Optional[str] = None,
        fallback_url: Optional[str] = None
    ) -> str:
        """
        Builds the outbound link for a deal.

        Direct deep links are only attempted when the store supports them AND a game id
        is supplied; every missing precondition falls through to the redirect form,
        which is always valid.
        """
        config = self.resolve(retailer_id)

        if (config.get("requiresDealId") and not deal_id) or (config.get("requiresStoreId") and not retailer_id):
            return self._redirect_url(deal_id, fallback_url)

        if config.get("isDirectLink") and game_id:
            url = config["urlTemplate"].replace("{gameId}", quote(str(game_id), safe=''))
            param, code = config.get("affiliateParam"), config.get("affiliateCode")
            if param and code:
                separator = '&' if urlparse(url).query else '?'
                url = f"{url}{separator}{quote(param)}={quote(code)}"
            return url

        return self._redirect_url(deal_id, fallback_url)
