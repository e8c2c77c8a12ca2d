# ===== TYPES & INTERFACES =====

from typing import TypedDict, Optional


class StoreConfig(TypedDict, total=False):
    """
    Static linking rules for one retailer.

    Attributes:
        name (str): Display name of the retailer.
        urlTemplate (str): Outbound URL with '{gameId}' or '{dealId}' placeholders.
        requiresDealId (bool): A discount-API deal id is needed to build a link.
        requiresStoreId (bool): A retailer id is needed to build a link.
        isDirectLink (bool): The retailer supports deep links to a product page.
        affiliateParam (Optional[str]): Query parameter name carrying the affiliate code.
        affiliateCode (Optional[str]): Affiliate code value.
    """
    name: str
    urlTemplate: str
    requiresDealId: bool
    requiresStoreId: bool
    isDirectLink: bool
    affiliateParam: Optional[str]
    affiliateCode: Optional[str]
