# ===== IMPORTS & DEPENDENCIES =====
import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import aiohttp

# --- Configuration ---
from gamedrops.config import LOG_LEVEL, DEAL_LIMIT, SERVER_HOST, SERVER_PORT, DATABASE_PATH

# --- Core Components ---
from gamedrops.core.database import DocumentStore
from gamedrops.core.persistence import PersistenceGateway
from gamedrops.core.pipeline import build_pipeline
from gamedrops.core.server import run_server

# ===== CONFIGURATION & CONSTANTS =====
logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


# ===== COMMANDS =====
async def run_once(store: DocumentStore, limit: Optional[int]) -> bool:
    """Runs the pipeline a single time and reports whether the batch was saved."""
    async with aiohttp.ClientSession() as session:
        pipeline = build_pipeline(session, store)
        try:
            result = await pipeline.run(limit, fetch_method='manual')
        except Exception as e:
            logger.critical(f"🔥🔥🔥 A critical error occurred in the main pipeline: {e}", exc_info=True)
            return False

    sources = ", ".join(f"{name}={count}" for name, count in result['sources'].items())
    logger.info(f"Run summary: {result['count']} deals ({sources}) in {result['executionTime']}.")
    return result['success']


def purge(store: DocumentStore) -> int:
    return PersistenceGateway(store).purge_expired()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gamedrops", description="Collects game deals and stores them.")
    parser.add_argument("--db", default=DATABASE_PATH, help="Path to the sqlite document store")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Fetch, rank and save deals once")
    run_parser.add_argument("--limit", type=int, default=DEAL_LIMIT, help="Maximum number of deals to keep")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP trigger server")
    serve_parser.add_argument("--host", default=SERVER_HOST)
    serve_parser.add_argument("--port", type=int, default=SERVER_PORT)

    subparsers.add_parser("purge", help="Delete documents past their retention horizon")
    return parser


# ===== INITIALIZATION & STARTUP =====
def main(argv: Optional[List[str]] = None) -> int:
    _configure_logging()
    args = build_parser().parse_args(argv)
    store = DocumentStore(args.db)

    if args.command == "run":
        return 0 if asyncio.run(run_once(store, args.limit)) else 1
    if args.command == "serve":
        run_server(args.host, args.port, store=store)
        return 0
    if args.command == "purge":
        removed = purge(store)
        logger.info(f"🧹 Purged {removed} expired deals.")
        return 0
    return 2


if __name__ == "__main__":
    sys.exit(main())
