"""
Tests for services.discovery.crawl.overpass

Uses httpx.MockTransport; no network.
"""

import httpx
import pytest

from services.discovery.crawl.ledger import InMemoryTileLedger
from services.discovery.crawl.overpass import OverpassFetcher, build_query, elements_to_venues
from services.discovery.crawl.scheduler import CrawlScheduler
from services.discovery.crawl.tiles import BBox, decompose
from services.discovery.errors import FetchFailure

TILE = decompose(BBox(0, 0, 0.0005, 0.0005), 0.0005)[0]


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestBuildQuery:
    def test_bbox_and_features(self):
        q = build_query(BBox(-122.7, 45.4, -122.5, 45.6), server_timeout_s=30)
        assert q.startswith("[out:json][timeout:30];")
        assert 'node["amenity"~"events_venue|conference_centre|wedding_venue"](45.4,-122.7,45.6,-122.5);' in q
        assert q.rstrip().endswith("out body center;")


class TestFetcherConfig:
    def test_requires_endpoint(self):
        with pytest.raises(ValueError):
            OverpassFetcher([])


class TestElementsToVenues:
    def test_nodes_and_ways(self):
        records = elements_to_venues([
            {"type": "node", "id": 1, "lat": 45.1, "lon": -122.1,
             "tags": {"name": "Oak Estate", "website": "https://oak.example"}},
            {"type": "way", "id": 2, "center": {"lat": 45.2, "lon": -122.2}, "tags": {}},
        ])
        assert [r.osm_id for r in records] == ["node/1", "way/2"]
        assert records[0].website_url == "https://oak.example"
        assert records[1].name == "Unknown Venue"
        assert (records[1].lat, records[1].lng) == (45.2, -122.2)

    def test_drops_missing_coordinates_and_duplicates(self):
        records = elements_to_venues([
            {"type": "node", "id": 1, "lat": 1.0, "lon": 2.0},
            {"type": "node", "id": 1, "lat": 1.0, "lon": 2.0},
            {"type": "way", "id": 3, "tags": {"name": "No Center"}},
        ])
        assert [r.osm_id for r in records] == ["node/1"]


@pytest.mark.asyncio
class TestOverpassFetcher:
    async def test_returns_elements(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert b"data=" in request.content
            return httpx.Response(200, json={"elements": [{"id": 1}]})

        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler)) as f:
            assert await f.fetch(TILE) == [{"id": 1}]

    async def test_retries_then_succeeds(self):
        statuses = iter([429, 503, 200])

        def handler(request):
            status = next(statuses)
            if status == 200:
                return httpx.Response(200, json={"elements": []})
            return httpx.Response(status)

        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler), base_delay_s=0) as f:
            assert await f.fetch(TILE) == []

    async def test_rotates_endpoint_on_non_retryable(self):
        hosts: list[str] = []

        def handler(request):
            hosts.append(request.url.host)
            if request.url.host == "o1.test":
                return httpx.Response(400)
            return httpx.Response(200, json={"elements": [{"id": 7}]})

        async with OverpassFetcher(
            ["https://o1.test/api", "https://o2.test/api"], client=_client(handler), base_delay_s=0,
        ) as f:
            assert await f.fetch(TILE) == [{"id": 7}]
        assert hosts == ["o1.test", "o2.test"]

    async def test_exhausted_raises_fetch_failure(self):
        def handler(request):
            return httpx.Response(504)

        async with OverpassFetcher(
            ["https://o1.test/api"], client=_client(handler), base_delay_s=0, max_attempts=2,
        ) as f:
            with pytest.raises(FetchFailure) as exc_info:
                await f.fetch(TILE)
        assert exc_info.value.tile_key == TILE.key
        assert "HTTP 504" in exc_info.value.reason

    async def test_server_timeout_remark_is_failure(self):
        def handler(request):
            return httpx.Response(200, json={
                "elements": [],
                "remark": "runtime error: Query timed out in \"query\" at line 1 after 31 seconds.",
            })

        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler)) as f:
            with pytest.raises(FetchFailure) as exc_info:
                await f.fetch(TILE)
        assert exc_info.value.timed_out is True
        assert "runtime error" in exc_info.value.reason

    async def test_body_without_elements_is_failure(self):
        def handler(request):
            return httpx.Response(200, json={"remark": "out of memory"})

        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler)) as f:
            with pytest.raises(FetchFailure) as exc_info:
                await f.fetch(TILE)
        assert exc_info.value.timed_out is False
        assert exc_info.value.reason == "out of memory"

    async def test_transport_error_moves_on(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler)) as f:
            with pytest.raises(FetchFailure):
                await f.fetch(TILE)

    async def test_requires_context_manager(self):
        with pytest.raises(RuntimeError):
            await OverpassFetcher(["https://o1.test/api"]).fetch(TILE)


@pytest.mark.asyncio
class TestCrawlWithFetcher:
    async def test_server_timeouts_leave_tiles_uncollected(self):
        def handler(request):
            return httpx.Response(200, json={
                "elements": [],
                "remark": "runtime error: Query timed out in \"query\" at line 1 after 31 seconds.",
            })

        ledger = InMemoryTileLedger()
        async with OverpassFetcher(["https://o1.test/api"], client=_client(handler)) as f:
            report = await CrawlScheduler(ledger, alert_threshold=10).run(
                BBox(0, 0, 0.001, 0.001), 0.0005, f.fetch, timeout_s=5,
            )

        assert report.collected == []
        assert len(report.failed) == 4
        assert all(failure.timed_out for failure in report.failed)
        assert len(ledger) == 0
