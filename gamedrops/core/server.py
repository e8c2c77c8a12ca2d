# ===== IMPORTS & DEPENDENCIES =====
import asyncio
import logging
import secrets
from typing import Optional

import aiohttp
from aiohttp import web

from gamedrops.config import CRON_SECRET, CRON_LIMIT, DEAL_LIMIT
from gamedrops.core.database import DocumentStore
from gamedrops.core.persistence import PersistenceGateway
from gamedrops.core.pipeline import DealPipeline, PipelineResult, build_pipeline
from gamedrops.utils.deal_utils import parse_int, to_iso, utc_now

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


class ServerState:
    """Holds the pipeline for the lifetime of the app. Filled in on startup when not injected."""

    def __init__(self, store: Optional[DocumentStore], pipeline: Optional[DealPipeline], cron_secret: Optional[str]):
        self.store = store
        self.pipeline = pipeline
        self.cron_secret = cron_secret

    @property
    def gateway(self) -> PersistenceGateway:
        return self.pipeline.gateway


STATE_KEY = web.AppKey("state", ServerState)


# ===== UTILITY FUNCTIONS =====
def _error(status: int, error: str, message: str) -> web.Response:
    return web.json_response({'error': error, 'message': message, 'timestamp': to_iso(utc_now())}, status=status)


def _limit_param(request: web.Request, default: int) -> int:
    value = parse_int(request.query.get('limit'))
    return default if value is None else value


def _check_cron_auth(request: web.Request, cron_secret: Optional[str]) -> Optional[web.Response]:
    """Returns an error response when the scheduled trigger is not authorized, otherwise None."""
    if not cron_secret:
        logger.error("❌ CRON_SECRET is not configured; refusing scheduled trigger.")
        return _error(500, 'Configuration error', 'Scheduled trigger secret is not configured')

    scheme, _, token = request.headers.get('Authorization', '').partition(' ')
    if scheme.lower() != 'bearer' or not token:
        logger.warning(f"⚠️ Scheduled trigger from {request.remote} without a bearer token.")
        return _error(401, 'Unauthorized', 'Missing bearer token')
    if not secrets.compare_digest(token.strip().encode(), cron_secret.encode()):
        logger.warning(f"⚠️ Scheduled trigger from {request.remote} with an invalid token.")
        return _error(401, 'Unauthorized', 'Invalid bearer token')
    return None


async def _run_pipeline(state: ServerState, limit: int, fetch_method: str) -> web.Response:
    try:
        result: PipelineResult = await state.pipeline.run(limit, fetch_method=fetch_method)
    except Exception as e:
        logger.error(f"❌ Error in {fetch_method} fetch-deals run: {e}", exc_info=True)
        return _error(500, 'API error', str(e) or e.__class__.__name__)

    if not result['success']:
        return _error(500, 'Database error', 'Failed to save deals to database')

    payload = dict(result)
    payload['cronJob'] = fetch_method == 'cron'
    return web.json_response(payload)


# ===== REQUEST HANDLERS =====
async def manual_fetch(request: web.Request) -> web.Response:
    """Unauthenticated trigger, meant for interactive testing."""
    logger.info("Processing GET request to /api/fetch-deals")
    state = request.app[STATE_KEY]
    return await _run_pipeline(state, _limit_param(request, DEAL_LIMIT), 'manual')


async def scheduled_fetch(request: web.Request) -> web.Response:
    """Bearer-authenticated trigger for the external scheduler. Rejected requests do no work."""
    logger.info("⏰ Processing scheduled request to /api/fetch-deals")
    state = request.app[STATE_KEY]
    rejection = _check_cron_auth(request, state.cron_secret)
    if rejection is not None:
        return rejection
    return await _run_pipeline(state, CRON_LIMIT, 'cron')


async def list_deals(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    free_only = request.query.get('free', '').lower() in ('1', 'true', 'yes')
    deals = await asyncio.to_thread(
        state.gateway.active_deals, free_only=free_only, limit=_limit_param(request, DEAL_LIMIT)
    )
    return web.json_response({'success': True, 'count': len(deals), 'deals': deals})


async def get_deal(request: web.Request) -> web.Response:
    state = request.app[STATE_KEY]
    deal_id = request.match_info['deal_id']
    deal = await asyncio.to_thread(state.gateway.get_deal, deal_id)
    if deal is None:
        return _error(404, 'Not found', f"No deal with id '{deal_id}'")
    return web.json_response({'success': True, 'deal': deal})


# ===== INITIALIZATION & STARTUP =====
async def _pipeline_ctx(app: web.Application):
    """Owns one ClientSession for the lifetime of the server."""
    state = app[STATE_KEY]
    if state.pipeline is not None:
        yield
        return

    async with aiohttp.ClientSession() as session:
        state.pipeline = build_pipeline(session, state.store)
        logger.info("✅ Deal pipeline ready.")
        yield


def create_app(
    store: Optional[DocumentStore] = None,
    pipeline: Optional[DealPipeline] = None,
    cron_secret: Optional[str] = CRON_SECRET
) -> web.Application:
    """Builds the trigger server. Pass `pipeline` to use a pre-built one instead of the default sources."""
    if store is None and pipeline is None:
        store = DocumentStore()

    app = web.Application()
    app[STATE_KEY] = ServerState(store, pipeline, cron_secret)
    app.cleanup_ctx.append(_pipeline_ctx)
    app.router.add_get('/api/fetch-deals', manual_fetch)
    app.router.add_post('/api/fetch-deals', scheduled_fetch)
    app.router.add_get('/api/deals', list_deals)
    app.router.add_get('/api/deals/{deal_id:.+}', get_deal)
    return app


def run_server(host: str, port: int, store: Optional[DocumentStore] = None) -> None:
    logger.info(f"🚀 Starting trigger server on {host}:{port}")
    web.run_app(create_app(store=store), host=host, port=port, print=None)
