# ===== TYPES & INTERFACES =====

from typing import TypedDict, List, Optional

# --- Providers ---
PROVIDER_DISCOUNT_API = "discount-api"
PROVIDER_STOREFRONT_RSS = "storefront-rss"
PROVIDER_VENDOR_PROMOTIONS = "vendor-promotions"
PROVIDERS = (PROVIDER_DISCOUNT_API, PROVIDER_STOREFRONT_RSS, PROVIDER_VENDOR_PROMOTIONS)

FREE_PRICE = "Free"


class CanonicalDeal(TypedDict, total=False):
    """
    The source-agnostic deal record produced by every adapter.
    Keys are camelCase because the record is written to the document store as-is.

    Attributes:
        id (str): '<provider>:<nativeId>', the upsert key.
        nativeId (str): The identifier the provider uses for this listing.
        title (str): Display name, never empty.
        slug (str): URL-safe identifier derived from the title, unique per run.
        imageUrl (Optional[str]): Best available promotional image.
        description (str): Plain-text description.
        originalPrice (str): '$X.XX' or 'Free'.
        dealPrice (str): '$X.XX' or 'Free'.
        savingsPercent (int): 0-100, always 100 when dealPrice is 'Free'.
        affiliateUrl (str): Monetized outbound link with tracking parameters.
        retailerId (str): Store Registry key.
        retailerName (str): Store display name from the Store Registry.
        datePosted (str): ISO-8601 start of the deal.
        expiryDate (Optional[str]): ISO-8601 end of the promotion, None when indefinite.
        provider (str): One of PROVIDERS.
        isUpcoming (bool): True for promotions that have not started yet.
        categories (List[str]): Tags, possibly empty.

        # Optional metadata carried over from providers
        platform (Optional[str]): Always 'PC' for current providers.
        metacriticScore (Optional[int]): Critic score (0-100).
        steamRatingPercent (Optional[int]): Steam review percentage.
        steamRatingCount (Optional[int]): Number of Steam reviews.
        publisher (Optional[str]): Publisher name.
        developer (Optional[str]): Developer name.
        releaseDate (Optional[str]): ISO-8601 release date.
    """
    # Core fields
    id: str
    nativeId: str
    title: str
    slug: str
    imageUrl: Optional[str]
    description: str
    originalPrice: str
    dealPrice: str
    savingsPercent: int
    affiliateUrl: str
    retailerId: str
    retailerName: str
    datePosted: str
    expiryDate: Optional[str]
    provider: str
    isUpcoming: bool
    categories: List[str]

    # Provider metadata
    platform: Optional[str]
    metacriticScore: Optional[int]
    steamRatingPercent: Optional[int]
    steamRatingCount: Optional[int]
    publisher: Optional[str]
    developer: Optional[str]
    releaseDate: Optional[str]


def make_deal_id(provider: str, native_id: str) -> str:
    """Builds the stable upsert key for a (provider, provider-native-id) pair."""
    return f"{provider}:{native_id}"


def is_free(deal: CanonicalDeal) -> bool:
    return deal.get('dealPrice') == FREE_PRICE
