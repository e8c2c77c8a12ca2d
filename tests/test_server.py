"""Tests for the HTTP trigger server."""

import threading

import pytest
from aiohttp import test_utils

from gamedrops.core.aggregator import Aggregator
from gamedrops.core.persistence import PersistenceGateway
from gamedrops.core.pipeline import DealPipeline
from gamedrops.core.server import create_app

from conftest import FakeSource, make_deal

SECRET = "s3cret"


@pytest.fixture
def sources():
    return [
        FakeSource([make_deal("1", deal_price="Free"), make_deal("2", savings=70)], name="Good"),
        FakeSource(error=RuntimeError("down"), name="Broken"),
    ]


@pytest.fixture
def pipeline(sources, store, now):
    return DealPipeline(Aggregator(sources), PersistenceGateway(store, collection="gameDeals", now=now))


@pytest.fixture
async def make_client():
    clients = []

    async def _make(app):
        client = test_utils.TestClient(test_utils.TestServer(app))
        await client.start_server()
        clients.append(client)
        return client

    yield _make
    for client in clients:
        await client.close()


async def test_manual_trigger_runs_pipeline(make_client, pipeline, sources):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=SECRET))

    resp = await client.get("/api/fetch-deals")
    assert resp.status == 200
    body = await resp.json()
    assert body['success'] is True
    assert body['cronJob'] is False
    assert body['count'] == 2
    assert body['sources'] == {"Good": 2, "Broken": 0}
    assert body['batchId']
    assert [d['nativeId'] for d in body['deals']] == ["1", "2"]
    assert sources[0].calls == 1


async def test_manual_trigger_respects_limit(make_client, pipeline):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=SECRET))
    body = await (await client.get("/api/fetch-deals?limit=1")).json()
    assert body['count'] == 1


@pytest.mark.parametrize("headers", [
    {},
    {"Authorization": "Bearer wrong"},
    {"Authorization": f"Basic {SECRET}"},
    {"Authorization": "Bearer "},
])
async def test_scheduled_trigger_rejects_bad_credentials(make_client, pipeline, sources, headers):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=SECRET))

    resp = await client.post("/api/fetch-deals", headers=headers)

    assert resp.status == 401
    assert (await resp.json())['error'] == "Unauthorized"
    assert all(source.calls == 0 for source in sources)


async def test_scheduled_trigger_without_configured_secret(make_client, pipeline, sources):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=None))
    resp = await client.post("/api/fetch-deals", headers={"Authorization": "Bearer anything"})
    assert resp.status == 500
    assert all(source.calls == 0 for source in sources)


async def test_scheduled_trigger_with_valid_token(make_client, pipeline, store):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=SECRET))

    resp = await client.post("/api/fetch-deals", headers={"Authorization": f"Bearer {SECRET}"})

    assert resp.status == 200
    body = await resp.json()
    assert body['cronJob'] is True
    assert store.get("gameDeals", "discount-api:1")['fetchMethod'] == "cron"


async def test_persistence_failure_returns_500(make_client, sources, now):
    class FailingGateway(PersistenceGateway):
        def upsert(self, deals, fetch_method=None):
            return False

    failing = DealPipeline(Aggregator(sources), FailingGateway(store=None, now=now))
    client = await make_client(create_app(pipeline=failing, cron_secret=SECRET))

    resp = await client.get("/api/fetch-deals")

    assert resp.status == 500
    assert (await resp.json())['error'] == "Database error"


async def test_read_endpoints(make_client, pipeline):
    client = await make_client(create_app(pipeline=pipeline, cron_secret=SECRET))
    await client.get("/api/fetch-deals")

    body = await (await client.get("/api/deals")).json()
    assert body['count'] == 2

    free = await (await client.get("/api/deals?free=1")).json()
    assert [d['nativeId'] for d in free['deals']] == ["1"]

    found = await client.get("/api/deals/discount-api:2")
    assert found.status == 200
    assert (await found.json())['deal']['nativeId'] == "2"

    missing = await client.get("/api/deals/discount-api:404")
    assert missing.status == 404


async def test_read_endpoints_query_storage_off_the_event_loop(make_client, sources, store, now):
    class ThreadRecordingGateway(PersistenceGateway):
        threads = []

        def active_deals(self, free_only=False, limit=None):
            self.threads.append(threading.get_ident())
            return super().active_deals(free_only=free_only, limit=limit)

        def get_deal(self, deal_id):
            self.threads.append(threading.get_ident())
            return super().get_deal(deal_id)

    gateway = ThreadRecordingGateway(store, collection="gameDeals", now=now)
    client = await make_client(create_app(pipeline=DealPipeline(Aggregator(sources), gateway), cron_secret=SECRET))

    assert (await client.get("/api/deals")).status == 200
    assert (await client.get("/api/deals/discount-api:1")).status == 404

    loop_thread = threading.get_ident()
    assert len(gateway.threads) == 2
    assert loop_thread not in gateway.threads
