"""Tests for the end-to-end pipeline run and the command line entry point."""

import threading
from unittest.mock import MagicMock, patch

import pytest

from gamedrops import main as cli
from gamedrops.core.aggregator import Aggregator
from gamedrops.core.database import DocumentStore
from gamedrops.core.persistence import PersistenceGateway
from gamedrops.core.pipeline import DealPipeline, build_sources
from gamedrops.sources.base import DealSource
from gamedrops.sources.cheapshark import CheapSharkSource
from gamedrops.sources.epic_games import EpicGamesSource
from gamedrops.sources.humble_rss import HumbleRssSource

from conftest import FakeSource, make_deal


def _pipeline(store, now, *sources):
    return DealPipeline(Aggregator(sources), PersistenceGateway(store, collection="gameDeals", now=now))


async def test_run_persists_ranked_deals(store, now):
    pipeline = _pipeline(
        store, now,
        FakeSource([make_deal("a", savings=40), make_deal("b", deal_price="Free")], name="First"),
        FakeSource(error=TimeoutError("slow provider"), name="Second"),
    )

    result = await pipeline.run(limit=10, fetch_method="manual")

    assert result['success'] is True
    assert result['count'] == 2
    assert result['sources'] == {"First": 2, "Second": 0}
    assert [d['nativeId'] for d in result['deals']] == ["b", "a"]
    assert result['batchId'] == pipeline.gateway.last_batch_id
    assert result['executionTime'].endswith(" seconds")
    assert {d['nativeId'] for d in store.query("gameDeals")} == {"a", "b"}


async def test_failed_write_leaves_previous_data(store, now):
    _pipeline(store, now, FakeSource([make_deal("old")])).gateway.upsert([make_deal("old")])

    failing_store = MagicMock(spec=DocumentStore)
    failing_store.batch_upsert.side_effect = OSError("disk gone")
    pipeline = DealPipeline(
        Aggregator([FakeSource([make_deal("new")])]),
        PersistenceGateway(failing_store, collection="gameDeals", now=now),
    )

    result = await pipeline.run()

    assert result['success'] is False
    assert result['batchId'] is None
    assert [d['nativeId'] for d in store.query("gameDeals")] == ["old"]


async def test_empty_run_succeeds_without_batch(store, now):
    result = await _pipeline(store, now, FakeSource([])).run()
    assert result['success'] is True
    assert result['count'] == 0
    assert result['batchId'] is None


def test_build_sources_order(session, registry):
    sources = build_sources(session, registry, cache_ttl=0)
    assert [type(s) for s in sources] == [CheapSharkSource, HumbleRssSource, EpicGamesSource]
    assert all(s.registry is registry for s in sources)


def test_cli_run_exit_codes(tmp_path, now):
    db_path = str(tmp_path / "cli.db")

    def fake_build(session, store, registry=None):
        return _pipeline(store, now, FakeSource([make_deal("cli", deal_price="Free")]))

    with patch.object(cli, "build_pipeline", side_effect=fake_build):
        assert cli.main(["--db", db_path, "run", "--limit", "5"]) == 0
    assert DocumentStore(db_path).get("gameDeals", "discount-api:cli") is not None

    with patch.object(DealPipeline, "run", side_effect=RuntimeError("boom")), \
            patch.object(cli, "build_pipeline", side_effect=fake_build):
        assert cli.main(["--db", db_path, "run"]) == 1


def test_cli_purge(tmp_path):
    db_path = str(tmp_path / "cli.db")
    DocumentStore(db_path).batch_upsert("gameDeals", [{'id': "x", 'expiresAt': "2000-01-01T00:00:00.000+00:00"}])
    assert cli.main(["--db", db_path, "purge"]) == 0
    assert DocumentStore(db_path).get("gameDeals", "x") is None


class ThreadRecordingGateway(PersistenceGateway):
    """Remembers which thread each upsert ran on."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.upsert_threads = []

    def upsert(self, deals, fetch_method=None):
        self.upsert_threads.append(threading.get_ident())
        return super().upsert(deals, fetch_method=fetch_method)


async def test_run_writes_off_the_event_loop_thread(store, now):
    gateway = ThreadRecordingGateway(store, collection="gameDeals", now=now)
    pipeline = DealPipeline(Aggregator([FakeSource([make_deal("a")])]), gateway)

    result = await pipeline.run()

    assert result['success'] is True
    assert len(gateway.upsert_threads) == 1
    assert gateway.upsert_threads[0] != threading.get_ident()
    assert store.get("gameDeals", "discount-api:a") is not None


def test_source_with_unknown_provider_is_rejected(session, registry):
    class MysterySource(DealSource):
        provider = "mystery-feed"

        async def _fetch_raw_items(self):
            return []

        def _normalize_item(self, raw_item):
            return None

    with pytest.raises(ValueError, match="mystery-feed"):
        MysterySource(session, registry, cache_ttl=0)
