"""검색 키/그리드 도구 - export only."""

from .cache_key import (
    build_deep_list_key,
    build_inflight_key,
    build_search_cache_key,
    normalize_search_input,
    parse_deep_offset,
)
from .grid import GridPoint, LatLng, Viewport, cell_viewport, generate_3x3_grid, generate_grid

__all__ = [
    "build_deep_list_key",
    "build_inflight_key",
    "build_search_cache_key",
    "normalize_search_input",
    "parse_deep_offset",
    "GridPoint",
    "LatLng",
    "Viewport",
    "cell_viewport",
    "generate_3x3_grid",
    "generate_grid",
]
