"""그리드 생성기 - 도시 뷰포트를 N×N 셀로 분할

각 셀의 중심점과 셀 전체를 덮는 반경(미터)을 계산합니다.
반경 = 셀 대각선의 절반 × 1.1 (인접 셀과 경계에서 겹치도록)
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

METERS_PER_DEGREE = 111_000
RADIUS_OVERLAP = 1.1


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class Viewport:
    northeast: LatLng
    southwest: LatLng

    @property
    def lat_span(self) -> float:
        return self.northeast.lat - self.southwest.lat

    @property
    def lng_span(self) -> float:
        return self.northeast.lng - self.southwest.lng

    @classmethod
    def from_api(cls, raw: Optional[Dict[str, Any]]) -> Optional["Viewport"]:
        """Places API 뷰포트(high/low 또는 northeast/southwest)를 변환"""
        if not raw:
            return None
        ne = raw.get("northeast") or raw.get("high")
        sw = raw.get("southwest") or raw.get("low")
        if not ne or not sw:
            return None

        def _point(p: Dict[str, Any]) -> LatLng:
            return LatLng(
                lat=float(p.get("lat", p.get("latitude", 0.0))),
                lng=float(p.get("lng", p.get("longitude", 0.0))),
            )

        return cls(northeast=_point(ne), southwest=_point(sw))


@dataclass(frozen=True)
class GridPoint:
    lat: float
    lng: float
    radius: int  # meters
    row: int = 0
    col: int = 0

    def location_bias(self) -> Dict[str, Any]:
        """Places API locationBias.circle 형식"""
        return {
            "circle": {
                "center": {"latitude": self.lat, "longitude": self.lng},
                "radius": float(self.radius),
            }
        }


def calculate_radius(lat_size: float, lng_size: float, base_lat: float) -> int:
    """셀 크기(도)를 덮는 반경(미터)"""
    height_m = abs(lat_size) * METERS_PER_DEGREE
    width_m = abs(lng_size) * METERS_PER_DEGREE * math.cos(math.radians(base_lat))
    diagonal = math.sqrt(height_m * height_m + width_m * width_m)
    return int(math.ceil((diagonal / 2) * RADIUS_OVERLAP))


def generate_grid(viewport: Viewport, size: int) -> List[GridPoint]:
    """뷰포트를 size×size 셀로 분할 (row 0 = 남쪽, col 0 = 서쪽)"""
    if size <= 0:
        raise ValueError("grid size must be positive")

    cell_lat = viewport.lat_span / size
    cell_lng = viewport.lng_span / size
    radius = calculate_radius(cell_lat, cell_lng, viewport.southwest.lat)

    points: List[GridPoint] = []
    for row in range(size):
        for col in range(size):
            points.append(
                GridPoint(
                    lat=viewport.southwest.lat + row * cell_lat + cell_lat / 2,
                    lng=viewport.southwest.lng + col * cell_lng + cell_lng / 2,
                    radius=radius,
                    row=row,
                    col=col,
                )
            )
    return points


def generate_3x3_grid(viewport: Viewport) -> List[GridPoint]:
    return generate_grid(viewport, 3)


def cell_viewport(viewport: Viewport, size: int, point: GridPoint) -> Viewport:
    """재귀 스캔용: 그리드 셀 하나의 경계 박스"""
    half_lat = viewport.lat_span / size / 2
    half_lng = viewport.lng_span / size / 2
    return Viewport(
        northeast=LatLng(lat=point.lat + half_lat, lng=point.lng + half_lng),
        southwest=LatLng(lat=point.lat - half_lat, lng=point.lng - half_lng),
    )
