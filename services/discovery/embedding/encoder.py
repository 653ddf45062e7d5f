"""
Venue text encoder using a sentence-transformers model.

Lazy-loads the model on first use. All vectors are L2-normalized before
return and checked against the configured dimension D, so a model swap that
changes the output size fails loudly instead of polluting the store.
"""

import logging
import threading
from typing import List

from services.discovery.config import settings
from services.discovery.errors import DimensionMismatchError

logger = logging.getLogger(__name__)

# Venue pages can be very long; the model truncates anyway
_MAX_CHARS = 4000


def venue_text(name: str, raw_markdown: str | None) -> str:
    """Text fed to the encoder for one venue."""
    body = (raw_markdown or "").strip()
    text = f"{name}\n\n{body}" if body else name
    return text[:_MAX_CHARS]


class VenueEncoder:
    """Thread-safe lazy model loading. Single and batch embedding."""

    def __init__(self, model_name: str | None = None, dimensions: int | None = None) -> None:
        self._model_name = model_name or settings.embedding_model
        self._dimensions = dimensions or settings.embedding_dim
        self._model = None
        self._lock = threading.Lock()

    def _load_model(self):
        """Load model on first use. Thread-safe via lock."""
        if self._model is not None:
            return
        with self._lock:
            if self._model is not None:
                return
            from sentence_transformers import SentenceTransformer

            logger.info("Loading embedding model: %s", self._model_name)
            self._model = SentenceTransformer(self._model_name)
            logger.info("Embedding model loaded successfully")

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _check(self, vectors: List[List[float]]) -> List[List[float]]:
        for vec in vectors:
            if len(vec) != self._dimensions:
                raise DimensionMismatchError(self._dimensions, len(vec))
        return vectors

    def embed_single(self, text: str) -> List[float]:
        self._load_model()
        embedding = self._model.encode(
            text,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return self._check([embedding.tolist()])[0]

    def embed_batch(self, texts: List[str], *, batch_size: int = 32) -> List[List[float]]:
        """Embed a batch of texts. batch_size controls encode memory use."""
        if not texts:
            return []

        self._load_model()
        embeddings = self._model.encode(
            texts,
            batch_size=batch_size,
            normalize_embeddings=True,
            show_progress_bar=False,
        )
        return self._check(embeddings.tolist())
