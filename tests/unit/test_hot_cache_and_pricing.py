"""Hot Cache / 크레딧 가격표 테스트"""
import pytest

from leadgen.engine.pricing import TX_DEEP_SEARCH, TX_PAGE_LOAD, TX_SEARCH, credit_charge_for
from leadgen.engine.result import CachedResult, SearchOutcome, SearchQuery
from leadgen.services.hot_cache import HotCache


class TestHotCache:
    @pytest.mark.asyncio
    async def test_set_then_get(self, fake_store):
        cache = HotCache(fake_store, ttl_seconds=60)
        assert await cache.set("k", {"places": [{"place_id": "p1"}]})
        assert await cache.get("k") == {"places": [{"place_id": "p1"}]}
        assert 0 < await fake_store.ttl("k") <= 60

    @pytest.mark.asyncio
    async def test_entry_expires(self, fake_store):
        cache = HotCache(fake_store, ttl_seconds=60)
        await cache.set("k", {"places": []})
        fake_store.advance(61)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_store_failure_is_a_miss(self, fake_store):
        cache = HotCache(fake_store)
        fake_store.fail = True
        assert await cache.get("k") is None
        assert await cache.set("k", {"places": []}) is False

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, fake_store):
        await fake_store.set("k", "{broken")
        assert await HotCache(fake_store).get("k") is None

    @pytest.mark.asyncio
    async def test_non_positive_ttl_skips_write(self, fake_store):
        cache = HotCache(fake_store)
        assert await cache.set("k", {"places": []}, ttl_seconds=0) is False
        assert fake_store.peek("k") is None


class TestCreditPricing:
    def test_standard_first_page(self):
        charge = credit_charge_for(SearchQuery(city="Istanbul", keyword="dentist"), "FREE")
        assert (charge.amount, charge.tx_type) == (1, TX_SEARCH)

    def test_deep_first_page(self):
        charge = credit_charge_for(SearchQuery(city="Istanbul", keyword="dentist", deep_search=True), "PRO")
        assert (charge.amount, charge.tx_type) == (15, TX_DEEP_SEARCH)

    @pytest.mark.parametrize("tier,amount", [("FREE", 2), (None, 2), ("STARTER", 1), ("PRO", 1), ("business", 1)])
    def test_pagination_by_tier(self, tier, amount):
        query = SearchQuery(city="Istanbul", keyword="dentist", page_token="provider-token")
        charge = credit_charge_for(query, tier)
        assert (charge.amount, charge.tx_type) == (amount, TX_PAGE_LOAD)

    def test_deep_pagination_is_page_load(self):
        query = SearchQuery(city="Istanbul", keyword="dentist", deep_search=True, page_token="deep:60")
        assert credit_charge_for(query, "FREE").tx_type == TX_PAGE_LOAD


class TestResultShapes:
    def test_cached_payload_drops_unknown_fields(self):
        payload = CachedResult.from_payload({
            "places": [{"place_id": "p1"}],
            "next_page_token": "t",
            "job_id": "leak",
            "user_id": "u1",
        }).to_payload()
        assert set(payload) == {"places", "next_page_token", "fetched_at", "expires_at"}

    def test_outcome_dict(self):
        assert SearchOutcome.joined("j1").to_dict() == {
            "type": "JOB", "data": None, "job_id": "j1", "message": "joined",
        }
        assert SearchOutcome.new_job("j2").message is None
        assert SearchOutcome.cached({"places": []}).is_cached
