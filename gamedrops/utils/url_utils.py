import logging
import re
from typing import Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

# Store product-page patterns; the first group is the product slug used as a deep-link game id
PRODUCT_SLUG_PATTERNS = {
    "humblebundle.com": re.compile(r'/store/([^/?#]+)'),
    "epicgames.com": re.compile(r'/(?:p|product)/([^/?#]+)'),
    "gog.com": re.compile(r'/(?:game|movie)/([^/?#]+)'),
    "steampowered.com": re.compile(r'/app/(\d+)'),
}


def extract_product_slug(url: Optional[str]) -> Optional[str]:
    """
    Extracts the store-specific product identifier from a product page URL.
    Returns None for unknown hosts or listing pages.
    """
    if not url:
        return None
    try:
        parsed = urlparse(url)
    except ValueError:
        logger.warning(f"⚠️ [url_utils] Could not parse URL: {url}")
        return None

    host = parsed.netloc.lower()
    path = parsed.path.rstrip('/')
    for domain, pattern in PRODUCT_SLUG_PATTERNS.items():
        if domain in host:
            match = pattern.search(path)
            if match and match.group(1) not in ('rss', 'search'):
                logger.debug(f"[url_utils] Extracted product slug '{match.group(1)}' from {url}")
                return match.group(1)
            return None
    return None


def clean_epic_slug(slug: Optional[str]) -> Optional[str]:
    """Epic slugs sometimes carry a '/home' suffix that breaks product URLs."""
    if not slug:
        return None
    cleaned = slug.replace('/home', '').strip('/')
    return cleaned or None
