# ===== IMPORTS & DEPENDENCIES =====
import logging
import secrets
import time
import uuid
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence

from gamedrops.config import DEALS_COLLECTION, DOCUMENT_TTL_DAYS
from gamedrops.core.database import DocumentStore, SERVER_TIMESTAMP, Document
from gamedrops.core.errors import PersistenceError
from gamedrops.models.deal import CanonicalDeal, FREE_PRICE
from gamedrops.utils.deal_utils import to_iso, utc_now

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


def fallback_document_id() -> str:
    """Time plus random suffix, for deals that somehow arrive without an id."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}"


# ===== CORE BUSINESS LOGIC =====
class PersistenceGateway:
    """
    Writes a run's deals to the document store as one merged batch.

    Every document gets the store's write time as 'lastUpdated', the run's shared
    'batchId', and an 'expiresAt' horizon used by the store's retention purge. The
    horizon is unrelated to the deal's own 'expiryDate'.
    """

    def __init__(
        self,
        store: DocumentStore,
        collection: str = DEALS_COLLECTION,
        ttl_days: int = DOCUMENT_TTL_DAYS,
        now: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.collection = collection
        self.ttl = timedelta(days=ttl_days)
        self._now = now or utc_now
        self.last_batch_id: Optional[str] = None

    def _to_document(self, deal: CanonicalDeal, batch_id: str, write_time: datetime,
                     fetch_method: Optional[str]) -> Document:
        document = dict(deal)
        document['id'] = deal.get('id') or fallback_document_id()
        document['lastUpdated'] = SERVER_TIMESTAMP
        document['batchId'] = batch_id
        document['expiresAt'] = to_iso(write_time + self.ttl)
        document['dateAdded'] = to_iso(write_time)
        if fetch_method:
            document['fetchMethod'] = fetch_method
        return document

    def upsert(self, deals: Sequence[CanonicalDeal], fetch_method: Optional[str] = None) -> bool:
        """Returns True when the whole batch was committed. Failures are logged, never raised."""
        if not deals:
            logger.info(f"[{self.__class__.__name__}] Nothing to write.")
            return True

        batch_id = uuid.uuid4().hex
        write_time = self._now()
        documents: List[Document] = [self._to_document(d, batch_id, write_time, fetch_method) for d in deals]

        try:
            self.store.batch_upsert(self.collection, documents, merge=True, insert_only_fields=('dateAdded',))
        except PersistenceError as e:
            logger.error(f"❌ [{self.__class__.__name__}] Batch {batch_id} failed: {e}")
            return False
        except Exception as e:
            logger.error(f"❌ [{self.__class__.__name__}] Unexpected error writing batch {batch_id}: {e}", exc_info=True)
            return False

        self.last_batch_id = batch_id
        logger.info(f"✅ [{self.__class__.__name__}] Saved {len(documents)} deals to '{self.collection}' (batch {batch_id}).")
        return True

    def active_deals(self, free_only: bool = False, limit: Optional[int] = None) -> List[Document]:
        """Deals whose own expiry has not passed, newest first."""
        filters = [('expiryDate', 'missing_or_gt', to_iso(self._now()))]
        if free_only:
            filters.append(('dealPrice', '==', FREE_PRICE))
        return self.store.query(self.collection, filters, order_by=('dateAdded', 'desc'), limit=limit)

    def get_deal(self, deal_id: str) -> Optional[Document]:
        return self.store.get(self.collection, deal_id)

    def purge_expired(self) -> int:
        return self.store.purge_expired(self.collection, now=self._now())
