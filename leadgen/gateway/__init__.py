"""업스트림 Places API 게이트웨이 - export only."""

from .places_gateway import (
    AttemptOutcome,
    OutcomeKind,
    PlacesGateway,
    PlacesPage,
    ScanOptions,
    SearchOptions,
    dedupe_places,
    transform_place,
)

__all__ = [
    "AttemptOutcome",
    "OutcomeKind",
    "PlacesGateway",
    "PlacesPage",
    "ScanOptions",
    "SearchOptions",
    "dedupe_places",
    "transform_place",
]
