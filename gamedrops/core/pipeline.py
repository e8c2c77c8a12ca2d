# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, TypedDict

import aiohttp

from gamedrops.affiliate.store_registry import StoreRegistry
from gamedrops.config import DEAL_LIMIT
from gamedrops.core.aggregator import Aggregator
from gamedrops.core.database import DocumentStore
from gamedrops.core.persistence import PersistenceGateway
from gamedrops.models.deal import CanonicalDeal
from gamedrops.sources.base import DealSource
from gamedrops.sources.cheapshark import CheapSharkSource
from gamedrops.sources.epic_games import EpicGamesSource
from gamedrops.sources.humble_rss import HumbleRssSource
from gamedrops.utils.deal_utils import to_iso, utc_now

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


class PipelineResult(TypedDict):
    """Summary of one run, returned by the triggers as JSON."""
    success: bool
    count: int
    sources: Dict[str, int]
    batchId: Optional[str]
    executionTime: str
    timestamp: str
    deals: List[CanonicalDeal]


# ===== CORE BUSINESS LOGIC / PIPELINE =====
class DealPipeline:
    """Orchestrates one run: collect deals from every source, then persist them as one batch."""

    def __init__(self, aggregator: Aggregator, gateway: PersistenceGateway):
        self.aggregator = aggregator
        self.gateway = gateway

    async def run(self, limit: Optional[int] = DEAL_LIMIT, fetch_method: Optional[str] = None) -> PipelineResult:
        logger.info("🚀🚀🚀 Starting Game Deals Pipeline 🚀🚀🚀")
        started = time.monotonic()

        deals = await self.aggregator.collect(limit)
        logger.info(f"💾 Saving {len(deals)} deals...")
        # sqlite writes block, so they run off the event loop
        success = await asyncio.to_thread(self.gateway.upsert, deals, fetch_method=fetch_method)

        elapsed = time.monotonic() - started
        if success:
            logger.info(f"🏁🏁🏁 Pipeline finished successfully in {elapsed:.2f}s 🏁🏁🏁")
        else:
            logger.error("❌ Pipeline failed: deals could not be saved. Stored data is unchanged.")

        return PipelineResult(
            success=success,
            count=len(deals),
            sources=dict(self.aggregator.last_source_counts),
            batchId=self.gateway.last_batch_id if success and deals else None,
            executionTime=f"{elapsed:.2f} seconds",
            timestamp=to_iso(utc_now()),
            deals=deals,
        )


# ===== INITIALIZATION =====
def build_sources(session: aiohttp.ClientSession, registry: StoreRegistry, **kwargs: Any) -> List[DealSource]:
    """The configured sources, in merge order."""
    return [
        CheapSharkSource(session, registry, **kwargs),
        HumbleRssSource(session, registry, **kwargs),
        EpicGamesSource(session, registry, **kwargs),
    ]


def build_pipeline(session: aiohttp.ClientSession, store: DocumentStore,
                   registry: Optional[StoreRegistry] = None) -> DealPipeline:
    registry = registry or StoreRegistry()
    aggregator = Aggregator(build_sources(session, registry))
    return DealPipeline(aggregator, PersistenceGateway(store))
