from services.discovery.embedding.store import EmbeddingStore
from services.discovery.embedding.vectors import centroid, cohesion, cosine_similarity, l2_normalize

__all__ = [
    "EmbeddingStore",
    "centroid",
    "cohesion",
    "cosine_similarity",
    "l2_normalize",
]
