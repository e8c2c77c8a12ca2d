# ===== CONFIGURATION & CONSTANTS =====
import os

# --- General Settings ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CACHE_DIR = os.getenv("CACHE_DIR", "cache")
DEFAULT_CACHE_TTL = int(os.getenv("CACHE_TTL", "3600"))  # 1 hour in seconds
REQUEST_TIMEOUT = float(os.getenv("REQUEST_TIMEOUT", "25"))
ADAPTER_TIMEOUT = float(os.getenv("ADAPTER_TIMEOUT", "30"))

# --- Persistence ---
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/deals.db")
DEALS_COLLECTION = os.getenv("DEALS_COLLECTION", "gameDeals")
DOCUMENT_TTL_DAYS = int(os.getenv("DOCUMENT_TTL_DAYS", "30"))

# --- Aggregation ---
MIN_SAVINGS_PERCENT = int(os.getenv("MIN_SAVINGS_PERCENT", "20"))
DEAL_LIMIT = int(os.getenv("DEAL_LIMIT", "10"))
CRON_LIMIT = int(os.getenv("CRON_LIMIT", str(DEAL_LIMIT * 2)))
SLUG_MAX_LENGTH = 50

# --- Trigger Server ---
CRON_SECRET = os.getenv("CRON_SECRET")
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", "8080"))

# --- Web Scraping & API Headers ---
COMMON_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept': 'application/json, application/rss+xml, text/xml, */*',
    'Accept-Encoding': 'gzip, deflate',
    'Connection': 'keep-alive'
}

# --- Discount API (CheapShark) ---
CHEAPSHARK_API_URL = "https://www.cheapshark.com/api/1.0"
CHEAPSHARK_DEALS_URL = f"{CHEAPSHARK_API_URL}/deals"
CHEAPSHARK_QUERY_DEFAULTS = {
    "storeID": os.getenv("CHEAPSHARK_STORE_IDS", "1"),
    "upperPrice": os.getenv("CHEAPSHARK_UPPER_PRICE", "15"),
    "pageSize": str(DEAL_LIMIT),
    "sortBy": "Recent",
    "onSale": "1",
    "metacritic": os.getenv("CHEAPSHARK_MIN_METACRITIC", "0"),
    "steamRating": os.getenv("CHEAPSHARK_MIN_STEAM_RATING", "0"),
}

# --- Storefront RSS (Humble Store) ---
HUMBLE_RSS_URL = os.getenv("HUMBLE_RSS_URL", "https://www.humblebundle.com/store/rss")
# Embedded images smaller than this (either side) are treated as icons/trackers
RSS_MIN_IMAGE_SIZE = 100

# --- Vendor Promotions (Epic Games Store) ---
EPIC_PROMOTIONS_URL = "https://store-site-backend-static.ak.epicgames.com/freeGamesPromotions?locale=en-US&country=US&allowCountries=US"
EPIC_FREE_GAMES_URL = "https://store.epicgames.com/en-US/free-games"
EPIC_IMAGE_PRIORITY = ['OfferImageWide', 'DieselStoreFrontWide', 'OfferImageTall', 'Thumbnail', 'VaultClosed']

# --- Store Registry (CheapShark store ids) ---
STEAM_STORE_ID = "1"
HUMBLE_STORE_ID = "11"
EPIC_STORE_ID = "25"
REDIRECT_URL_TEMPLATE = "https://www.cheapshark.com/redirect?dealID={deal_id}"

HUMBLE_PARTNER_ID = os.getenv("HUMBLE_PARTNER_ID")
EPIC_CREATOR_CODE = os.getenv("EPIC_CREATOR_CODE")
GMG_AFFILIATE_ID = os.getenv("GMG_AFFILIATE_ID")

# --- Tracking Parameters ---
TRACKING_SOURCE = os.getenv("TRACKING_SOURCE", "dailygamedrops")
TRACKING_MEDIUM = "affiliate"
TRACKING_CAMPAIGN = "homepage"
