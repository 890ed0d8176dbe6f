"""SearchWorker 테스트"""
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from leadgen.core.config import settings
from leadgen.core.exceptions import CacheStoreUnavailable, SearchExpired, UpstreamTransient
from leadgen.engine.circuit_breaker import CircuitBreaker
from leadgen.engine.job_store import JobStatus, JobStore
from leadgen.engine.result import SearchQuery
from leadgen.gateway.mock_places import mock_transport
from leadgen.gateway.places_gateway import PlacesGateway, PlacesPage
from leadgen.repositories.impl.search_cache_repository import SearchCacheRepository
from leadgen.repositories.models import Place
from leadgen.search.cache_key import build_inflight_key, build_updates_channel
from leadgen.worker.search_worker import SearchWorker


def _place(i, website=True):
    return {
        "place_id": f"p{i}",
        "name": f"Clinic {i}",
        "formatted_address": f"Street {i}",
        "website": f"https://clinic{i}.example" if website else None,
        "location": {"latitude": 41.0, "longitude": 29.0},
        "types": ["dentist"],
    }


async def _prepare_job(store, job_id, query):
    """오케스트레이터가 남기는 상태 재현: inflight 등록 + pending 작업"""
    await store.set(build_inflight_key(query.cache_key), job_id, ex=300, nx=True)
    await JobStore(store).create(job_id, query.cache_key)
    return {"job_id": job_id, "cache_key": query.cache_key, "query": query.to_payload(), "user_id": "u1", "tier": "PRO"}


def _messages(store, job_id):
    channel = build_updates_channel(job_id)
    return [json.loads(m) for c, m in store.published if c == channel]


@pytest.fixture
def enqueue_enrichment():
    return MagicMock()


class TestStandardSearch:
    @pytest.mark.asyncio
    async def test_success_writes_both_tiers_and_releases(
        self, fake_store, session_factory, enqueue_enrichment, monkeypatch
    ):
        monkeypatch.setattr(settings, "standard_page_size", 2)
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[_place(1), _place(2, website=False)], next_page_token="next-1"),
        ])
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory, enqueue_enrichment=enqueue_enrichment)
        query = SearchQuery(city="Istanbul", keyword="dentist")
        payload = await _prepare_job(fake_store, "j1", query)

        result = await worker.run("j1", payload)

        assert [p["place_id"] for p in result["places"]] == ["p1", "p2"]
        assert result["next_page_token"] == "next-1"
        assert "job_id" not in result

        assert json.loads(fake_store.peek(query.cache_key))["places"] == result["places"]
        with session_factory() as db:
            cached, _ = SearchCacheRepository(db).get_unexpired(query.cache_key)
            assert cached["places"] == result["places"]
            assert db.query(Place).count() == 2

        record = await JobStore(fake_store).get("j1")
        assert record.status == JobStatus.COMPLETED
        assert record.progress == 100
        assert fake_store.peek(build_inflight_key(query.cache_key)) is None

        enqueue_enrichment.assert_called_once_with("p1")
        types = [m["type"] for m in _messages(fake_store, "j1")]
        assert types == ["batch", "completed"]

    @pytest.mark.asyncio
    async def test_pages_until_page_size(self, fake_store, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "standard_page_size", 3)
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[_place(1), _place(2)], next_page_token="t2"),
            PlacesPage(places=[_place(3), _place(4)], next_page_token="t3"),
        ])
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert len(result["places"]) == 3
        assert gateway.search_text.await_count == 2
        second_options = gateway.search_text.await_args_list[1].args[1]
        assert second_options.page_token == "t2"
        assert second_options.page_size == 1

    @pytest.mark.asyncio
    async def test_empty_page_with_token_stops_paging(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(return_value=PlacesPage(places=[], next_page_token="same-token"))
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert gateway.search_text.await_count == 1
        assert result["places"] == []
        assert result["next_page_token"] is None
        assert (await JobStore(fake_store).get("j1")).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_empty_later_page_keeps_earlier_results(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[_place(1), _place(2)], next_page_token="t2"),
            PlacesPage(places=[], next_page_token="t3"),
        ])
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert [p["place_id"] for p in result["places"]] == ["p1", "p2"]
        assert result["next_page_token"] is None

    @pytest.mark.asyncio
    async def test_repeated_token_stops_paging(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(return_value=PlacesPage(places=[_place(1), _place(2)], next_page_token="same"))
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert gateway.search_text.await_count == 2
        assert [p["place_id"] for p in result["places"]] == ["p1", "p2"]
        assert result["next_page_token"] is None

    @pytest.mark.asyncio
    async def test_fetch_count_is_capped(self, fake_store, session_factory):
        # 20건 페이지 → 최대 ceil(20/20)+1 = 2회 호출
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[_place(i)], next_page_token=f"t{i}") for i in range(10)
        ])
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert gateway.search_text.await_count == 2
        assert [p["place_id"] for p in result["places"]] == ["p0", "p1"]
        assert result["next_page_token"] == "t1"

    @pytest.mark.asyncio
    async def test_places_deduplicated_across_pages(self, fake_store, session_factory, monkeypatch):
        monkeypatch.setattr(settings, "standard_page_size", 3)
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[_place(1), _place(2)], next_page_token="t2"),
            PlacesPage(places=[_place(2), _place(3)], next_page_token="t3"),
        ])
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert [p["place_id"] for p in result["places"]] == ["p1", "p2", "p3"]

    @pytest.mark.asyncio
    async def test_failure_marks_failed_and_releases(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=UpstreamTransient("HTTP 503", 503))
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")
        payload = await _prepare_job(fake_store, "j1", query)

        with pytest.raises(UpstreamTransient):
            await worker.run("j1", payload)

        record = await JobStore(fake_store).get("j1")
        assert record.status == JobStatus.FAILED
        assert "503" in record.error
        assert fake_store.peek(build_inflight_key(query.cache_key)) is None
        assert fake_store.peek(query.cache_key) is None
        assert _messages(fake_store, "j1")[-1]["type"] == "failed"

    @pytest.mark.asyncio
    async def test_release_does_not_touch_newer_registration(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(return_value=PlacesPage(places=[_place(1)]))
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")
        payload = await _prepare_job(fake_store, "j1", query)

        # 등록이 만료되어 다른 리더가 차지한 상황
        await fake_store.set(build_inflight_key(query.cache_key), "j2", ex=300)
        await worker.run("j1", payload)

        assert fake_store.peek(build_inflight_key(query.cache_key)) == "j2"

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_job(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(return_value=PlacesPage(places=[_place(1)]))
        publisher = MagicMock()
        publisher.publish = AsyncMock(side_effect=CacheStoreUnavailable("publish", "down"))
        worker = SearchWorker(fake_store, gateway, publisher, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist")

        await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert (await JobStore(fake_store).get("j1")).status == JobStatus.COMPLETED


class TestDeepSearch:
    @pytest.mark.asyncio
    async def test_deep_search_with_mock_upstream(self, fake_store, session_factory):
        gateway = PlacesGateway(
            fake_store,
            client=httpx.AsyncClient(transport=mock_transport()),
            breaker=CircuitBreaker("places-test"),
            api_keys=["mock-key"],
            sleep=AsyncMock(),
        )
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Istanbul", keyword="dentist", deep_search=True)

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        stored = json.loads(fake_store.peek(query.deep_list_key))
        assert len(result["places"]) == 60
        assert len(stored) > 60
        assert len({p["place_id"] for p in stored}) == len(stored)
        assert result["next_page_token"] == "deep:60"
        progress = [m for m in _messages(fake_store, "j1") if m["type"] == "progress"]
        assert progress and progress[-1]["progress"] <= 90
        await gateway.close()

    @pytest.mark.asyncio
    async def test_no_viewport_falls_back_to_text_search(self, fake_store, session_factory):
        gateway = MagicMock()
        gateway.search_text = AsyncMock(side_effect=[
            PlacesPage(places=[]),
            PlacesPage(places=[_place(1), _place(1), _place(2)]),
        ])
        gateway.scan_city = AsyncMock()
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)
        query = SearchQuery(city="Nowhere", keyword="dentist", deep_search=True)

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        gateway.scan_city.assert_not_awaited()
        assert [p["place_id"] for p in result["places"]] == ["p1", "p2"]
        assert result["next_page_token"] is None

    @pytest.mark.asyncio
    async def test_deep_page_slices_stored_list(self, fake_store, session_factory):
        places = [_place(i, website=False) for i in range(130)]
        query = SearchQuery(city="Istanbul", keyword="dentist", deep_search=True, page_token="deep:60")
        await fake_store.set(query.deep_list_key, json.dumps(places), ex=3600)
        gateway = MagicMock()
        gateway.search_text = AsyncMock()
        worker = SearchWorker(fake_store, gateway, fake_store, session_factory)

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert [p["place_id"] for p in result["places"]] == [f"p{i}" for i in range(60, 120)]
        assert result["next_page_token"] == "deep:120"
        gateway.search_text.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_last_deep_page_has_no_token(self, fake_store, session_factory):
        query = SearchQuery(city="Istanbul", keyword="dentist", deep_search=True, page_token="deep:60")
        await fake_store.set(query.deep_list_key, json.dumps([_place(i) for i in range(70)]), ex=3600)
        worker = SearchWorker(fake_store, MagicMock(), fake_store, session_factory)

        result = await worker.run("j1", await _prepare_job(fake_store, "j1", query))

        assert len(result["places"]) == 10
        assert result["next_page_token"] is None

    @pytest.mark.asyncio
    async def test_deep_page_with_expired_list(self, fake_store, session_factory):
        query = SearchQuery(city="Istanbul", keyword="dentist", deep_search=True, page_token="deep:60")
        worker = SearchWorker(fake_store, MagicMock(), fake_store, session_factory)

        with pytest.raises(SearchExpired):
            await worker.run("j1", await _prepare_job(fake_store, "j1", query))
        assert (await JobStore(fake_store).get("j1")).status == JobStatus.FAILED
