"""검색 캐시 키 생성 테스트"""
import pytest

from leadgen.core.exceptions import InvalidPageToken, ValidationException
from leadgen.engine.result import SearchQuery
from leadgen.search.cache_key import (
    build_deep_list_key,
    build_deep_token,
    build_inflight_key,
    build_search_cache_key,
    build_updates_channel,
    is_deep_token,
    normalize_search_input,
    parse_deep_offset,
)
from leadgen.utils.hash_utils import short_hash


class TestBuildSearchCacheKey:
    def test_first_page_standard(self):
        assert build_search_cache_key("istanbul", "dentist", False) == "search:global:istanbul:dentist:std:p1"

    def test_first_page_deep(self):
        assert build_search_cache_key("istanbul", "dentist", True) == "search:global:istanbul:dentist:deep:p1"

    def test_same_input_same_key(self):
        """순수 함수: 같은 입력은 항상 같은 키"""
        keys = {build_search_cache_key("ankara", "cafe", False, "tok-123") for _ in range(50)}
        assert len(keys) == 1

    def test_provider_token_is_hashed(self):
        token = "CAESBkVnSUlBUQ" * 10
        key = build_search_cache_key("ankara", "cafe", False, token)
        assert key == f"search:global:ankara:cafe:std:tok:{short_hash(token)}"
        assert token not in key
        assert len(short_hash(token)) == 16

    def test_different_tokens_different_keys(self):
        a = build_search_cache_key("ankara", "cafe", False, "token-a")
        b = build_search_cache_key("ankara", "cafe", False, "token-b")
        assert a != b

    def test_deep_token_passes_through_and_forces_deep_mode(self):
        key = build_search_cache_key("izmir", "gym", False, "deep:60")
        assert key == "search:global:izmir:gym:deep:deep:60"

    def test_deep_and_standard_do_not_collide(self):
        assert build_search_cache_key("izmir", "gym", False) != build_search_cache_key("izmir", "gym", True)


class TestSearchQueryKey:
    def test_normalization_trims_and_lowercases(self):
        a = SearchQuery(city="  Istanbul ", keyword="DENTIST")
        b = SearchQuery(city="istanbul", keyword="dentist ")
        assert a.cache_key == b.cache_key == "search:global:istanbul:dentist:std:p1"

    def test_deep_list_key(self):
        q = SearchQuery(city="Istanbul", keyword="Dentist", deep_search=True)
        assert q.deep_list_key == build_deep_list_key("istanbul", "dentist")
        assert q.deep_list_key == "search:list:data:global:istanbul:dentist"

    def test_pagination_flags(self):
        q = SearchQuery(city="a city", keyword="kw", page_token="deep:20")
        assert q.is_pagination
        assert q.is_deep_pagination
        assert q.is_deep

        q2 = SearchQuery(city="a city", keyword="kw", page_token="provider-token")
        assert q2.is_pagination
        assert not q2.is_deep_pagination

    def test_payload_round_trip_keeps_key(self):
        q = SearchQuery(city="Istanbul", keyword="Dentist", deep_search=True, page_token="deep:60")
        assert SearchQuery.from_payload(q.to_payload()).cache_key == q.cache_key

    def test_text_query(self):
        assert SearchQuery(city=" Istanbul ", keyword=" dentist").text_query == "dentist in Istanbul"


class TestHelpers:
    def test_normalize_none(self):
        assert normalize_search_input(None) == ""

    def test_inflight_and_channel(self):
        assert build_inflight_key("search:global:a:b:std:p1") == "inflight:search:global:a:b:std:p1"
        assert build_updates_channel("abc") == "search:updates:abc"

    def test_is_deep_token(self):
        assert is_deep_token("deep:0")
        assert not is_deep_token(None)
        assert not is_deep_token("")
        assert not is_deep_token("deeper")

    def test_parse_deep_offset(self):
        assert parse_deep_offset(build_deep_token(120)) == 120

    @pytest.mark.parametrize("token", ["deep:", "deep:abc", "deep:-5", "page:3"])
    def test_parse_deep_offset_rejects_malformed(self, token):
        with pytest.raises(InvalidPageToken) as exc_info:
            parse_deep_offset(token)
        assert isinstance(exc_info.value, ValidationException)
        assert exc_info.value.error_code == "VALIDATION_ERROR"
