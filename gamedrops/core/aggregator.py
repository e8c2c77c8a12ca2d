# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from gamedrops.config import ADAPTER_TIMEOUT, MIN_SAVINGS_PERCENT
from gamedrops.models.deal import CanonicalDeal, is_free
from gamedrops.sources.base import DealSource
from gamedrops.utils.deal_utils import generate_slug

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


# ===== UTILITY FUNCTIONS =====
def merge_deals(batches: Sequence[List[CanonicalDeal]]) -> List[CanonicalDeal]:
    """Concatenates the batches in order and keeps the last deal seen for every id."""
    unique: Dict[str, CanonicalDeal] = {}
    for batch in batches:
        for deal in batch:
            unique[deal['id']] = deal
    return list(unique.values())


def disambiguate_slugs(deals: List[CanonicalDeal]) -> List[CanonicalDeal]:
    """
    Makes slugs unique within the run. A taken slug first gets the slugified native id
    appended, then the provider, then a counter.
    """
    seen = set()
    result = []
    for deal in deals:
        slug = deal.get('slug') or ""
        if slug in seen:
            base = slug
            candidates = [
                f"{base}-{generate_slug(deal.get('nativeId', ''))}".strip('-'),
                f"{base}-{generate_slug(deal.get('provider', ''))}-{generate_slug(deal.get('nativeId', ''))}".strip('-'),
            ]
            slug = next((c for c in candidates if c and c not in seen), None)
            counter = 2
            while slug is None or slug in seen:
                slug = f"{base}-{counter}".strip('-')
                counter += 1
            deal = {**deal, 'slug': slug}
        seen.add(slug)
        result.append(deal)
    return result


def passes_quality_filter(deal: CanonicalDeal, min_savings_percent: int) -> bool:
    if not deal.get('imageUrl'):
        return False
    return is_free(deal) or deal.get('savingsPercent', 0) >= min_savings_percent


def rank_deals(deals: List[CanonicalDeal]) -> List[CanonicalDeal]:
    """Free first, then by savings descending, then most recently posted first."""
    # ISO timestamps sort chronologically; two stable passes give the mixed direction
    ranked = sorted(deals, key=lambda d: d.get('datePosted') or "", reverse=True)
    ranked.sort(key=lambda d: (not is_free(d), -d.get('savingsPercent', 0)))
    return ranked


# ===== CORE BUSINESS LOGIC =====
class Aggregator:
    """Runs every source concurrently, then merges, filters, ranks and truncates the results."""

    def __init__(
        self,
        sources: Sequence[DealSource],
        min_savings_percent: int = MIN_SAVINGS_PERCENT,
        adapter_timeout: float = ADAPTER_TIMEOUT
    ):
        self.sources = list(sources)
        self.min_savings_percent = min_savings_percent
        self.adapter_timeout = adapter_timeout
        self.last_source_counts: Dict[str, int] = {}

    async def _run_source(self, source: DealSource) -> List[CanonicalDeal]:
        return await asyncio.wait_for(source.fetch_and_normalize(), timeout=self.adapter_timeout)

    async def _fetch_all(self) -> List[List[CanonicalDeal]]:
        """Fetches from all sources in parallel. A failed or timed out source contributes nothing."""
        logger.info(f"--- Fetching deals from {len(self.sources)} sources ---")
        results = await asyncio.gather(*(self._run_source(s) for s in self.sources), return_exceptions=True)

        batches: List[List[CanonicalDeal]] = []
        self.last_source_counts = {}
        for source, result in zip(self.sources, results):
            if isinstance(result, list):
                logger.info(f"✅ Found {len(result)} deals from {source.name}.")
                batches.append(result)
            elif isinstance(result, asyncio.TimeoutError):
                logger.error(f"❌ {source.name} timed out after {self.adapter_timeout}s.")
                batches.append([])
            else:
                logger.error(f"❌ Failed to fetch from {source.name}: {result!r}")
                batches.append([])
            self.last_source_counts[source.name] = len(batches[-1])
        return batches

    async def collect(self, limit: Optional[int] = None) -> List[CanonicalDeal]:
        """
        Returns the ranked deal list for this run.

        `limit` is applied after filtering and ranking; None means no limit and
        a limit of zero or less yields an empty list.
        """
        batches = await self._fetch_all()
        total = sum(len(b) for b in batches)

        merged = merge_deals(batches)
        logger.info(f"Deduplication complete: {total} candidates -> {len(merged)} unique deals.")

        merged = disambiguate_slugs(merged)
        kept = [d for d in merged if passes_quality_filter(d, self.min_savings_percent)]
        logger.info(f"Quality filter kept {len(kept)} of {len(merged)} deals.")

        ranked = rank_deals(kept)
        if limit is not None:
            ranked = ranked[:max(limit, 0)]
        return ranked
