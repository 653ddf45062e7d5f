from services.discovery.ranking.engine import (
    GeoRadius,
    OrderedPage,
    PageRequest,
    RankedVenue,
    RankingEngine,
    SortMode,
    VenueFilter,
)

__all__ = [
    "GeoRadius",
    "OrderedPage",
    "PageRequest",
    "RankedVenue",
    "RankingEngine",
    "SortMode",
    "VenueFilter",
]
