from services.discovery.taste.builder import TasteProfileBuilder
from services.discovery.taste.profiles import InMemoryProfileStore, PgProfileStore, ProfileStore

__all__ = [
    "InMemoryProfileStore",
    "PgProfileStore",
    "ProfileStore",
    "TasteProfileBuilder",
]
