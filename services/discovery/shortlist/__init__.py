from services.discovery.shortlist.service import (
    InMemoryShortlistRepository,
    PgShortlistRepository,
    ShortlistRepository,
    ShortlistService,
    ToggleResult,
)

__all__ = [
    "InMemoryShortlistRepository",
    "PgShortlistRepository",
    "ShortlistRepository",
    "ShortlistService",
    "ToggleResult",
]
