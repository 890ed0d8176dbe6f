"""크레딧 가격표

- 일반 검색 첫 페이지: credit_cost_search
- Deep search 첫 페이지: credit_cost_deep_search
- 페이지네이션(업스트림 토큰 / deep: 토큰): FREE 플랜은 더 비싸게
"""

from dataclasses import dataclass
from typing import Optional

from leadgen.core.config import settings
from leadgen.engine.result import SearchQuery

TX_SEARCH = "SEARCH"
TX_DEEP_SEARCH = "DEEP_SEARCH"
TX_PAGE_LOAD = "PAGE_LOAD"

TIERS = ("FREE", "STARTER", "PRO", "BUSINESS")


@dataclass(frozen=True)
class CreditCharge:
    amount: int
    tx_type: str
    description: str


def credit_charge_for(query: SearchQuery, tier: Optional[str]) -> CreditCharge:
    """검색 요청 1건의 크레딧 비용"""
    if query.is_pagination:
        amount = (
            settings.credit_cost_page_load_free
            if (tier or "FREE").upper() == "FREE"
            else settings.credit_cost_page_load
        )
        return CreditCharge(amount, TX_PAGE_LOAD, f"Page load: {query.keyword} in {query.city}")

    if query.deep_search:
        return CreditCharge(
            settings.credit_cost_deep_search,
            TX_DEEP_SEARCH,
            f"Deep search: {query.keyword} in {query.city}",
        )

    return CreditCharge(settings.credit_cost_search, TX_SEARCH, f"Search: {query.keyword} in {query.city}")
