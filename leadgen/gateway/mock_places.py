"""로컬 개발용 Places API 목(mock) 전송 계층 (PLACES_MOCK=true)

실제 HTTP 대신 httpx.MockTransport 로 결정적인 응답을 돌려줍니다.
게이트웨이의 예산/차단기/동시성 경로는 그대로 통과합니다.
"""

import json
import random
from typing import Any, Dict, Tuple

import httpx

from leadgen.utils.hash_utils import sha256_hex

MOCK_TOTAL_RESULTS = 60
MOCK_PAGE_SIZE = 20

_KNOWN_CENTERS = {
    "istanbul": (41.0082, 28.9784),
    "ankara": (39.9334, 32.8597),
    "izmir": (38.4237, 27.1428),
    "london": (51.5074, -0.1278),
    "new york": (40.7128, -74.0060),
    "seoul": (37.5665, 126.9780),
}


def _seed(value: str) -> int:
    return int(sha256_hex(value)[:8], 16)


def _center(query: str, body: Dict[str, Any]) -> Tuple[float, float]:
    circle = (body.get("locationBias") or {}).get("circle") or {}
    center = circle.get("center") or {}
    if "latitude" in center and "longitude" in center:
        return float(center["latitude"]), float(center["longitude"])

    lowered = query.lower()
    for name, point in _KNOWN_CENTERS.items():
        if name in lowered:
            return point
    return 39.0, 35.0


def _is_city_probe(query: str, page_size: int) -> bool:
    return page_size <= 5 and " in " not in query.lower()


def _city_probe(query: str, body: Dict[str, Any]) -> Dict[str, Any]:
    lat, lng = _center(query, body)
    return {
        "places": [
            {
                "id": f"mock_city_{_seed(query)}",
                "displayName": {"text": query},
                "formattedAddress": f"{query} (Mock)",
                "location": {"latitude": lat, "longitude": lng},
                "viewport": {
                    "low": {"latitude": lat - 0.35, "longitude": lng - 0.55},
                    "high": {"latitude": lat + 0.35, "longitude": lng + 0.55},
                },
                "businessStatus": "OPERATIONAL",
            }
        ]
    }


def _page(query: str, body: Dict[str, Any]) -> Dict[str, Any]:
    token = body.get("pageToken") or ""
    page = 1
    if token.startswith("mock:"):
        try:
            page = max(1, int(token.rsplit(":p", 1)[1]))
        except (IndexError, ValueError):
            page = 1

    lat, lng = _center(query, body)
    cell = f"{lat:.4f},{lng:.4f}"
    base = _seed(f"{query}|{cell}")
    rand = random.Random(_seed(f"{query}|{cell}|{page}"))

    start = (page - 1) * MOCK_PAGE_SIZE
    end = min(MOCK_TOTAL_RESULTS, start + MOCK_PAGE_SIZE)
    places = []
    for i in range(start, end):
        place_id = f"mock_{base}_{i}"
        has_website = rand.random() > 0.45
        has_phone = rand.random() > 0.25
        places.append({
            "id": place_id,
            "displayName": {"text": f"{query} #{i + 1}"},
            "formattedAddress": f"Mock Address {i + 1}",
            "nationalPhoneNumber": f"+90 212 {rand.randint(1000000, 9999999)}" if has_phone else None,
            "websiteUri": f"https://example.org/biz/{place_id}" if has_website else None,
            "rating": round(3.2 + rand.random() * 1.7, 1),
            "userRatingCount": rand.randint(10, 910),
            "businessStatus": "OPERATIONAL",
            "location": {
                "latitude": lat + (rand.random() - 0.5) * 0.18,
                "longitude": lng + (rand.random() - 0.5) * 0.26,
            },
            "types": ["point_of_interest", "establishment"],
            "regularOpeningHours": {"openNow": rand.random() > 0.4},
        })

    data: Dict[str, Any] = {"places": places}
    if end < MOCK_TOTAL_RESULTS:
        data["nextPageToken"] = f"mock:{base}:p{page + 1}"
    return data


def handle(request: httpx.Request) -> httpx.Response:
    try:
        body = json.loads(request.content or b"{}")
    except json.JSONDecodeError:
        return httpx.Response(400, json={"error": {"message": "invalid body"}})

    query = str(body.get("textQuery") or "")
    page_size = int(body.get("pageSize") or MOCK_PAGE_SIZE)
    if _is_city_probe(query, page_size):
        return httpx.Response(200, json=_city_probe(query, body))
    return httpx.Response(200, json=_page(query, body))


def mock_transport() -> httpx.MockTransport:
    return httpx.MockTransport(handle)
