"""
TasteProfileBuilder: turns swipe feedback into a TasteProfile.

Vector:
    v = mean(liked) - damping * mean(skipped), then L2-normalised.
    If damping cancels the vector entirely, fall back to normalised mean(liked).
    damping = 0 ignores skips; larger values push harder away from them.

Confidence:
    evidence = 1 - exp(-likes / like_saturation)    saturates toward 1.0
    cohesion = mean pairwise cosine of liked vectors, clipped to [0, 1]
    confidence = min(evidence, cohesion)
    For a fixed cohesion this is non-decreasing in the number of likes;
    contradictory likes (low cohesion) cap it no matter how many there are.

Descriptive words:
    For each attribute feature (estate, historic, lodging, pricing tier),
    score = prevalence among liked venues, weighted by each venue's cosine
    to the profile vector. Features scoring >= word_threshold map to the
    vocabulary in taste/vocabulary.py. Deterministic for the same liked set.

Zero likes:
    "undetermined" profile: confidence 0, no words, vector = the neutral
    (catalog mean) vector supplied by the caller.

Live nudge:
    nudge() blends one newly liked venue into an existing profile with a
    learning rate (0.1 default): new = (1 - lr) * old + lr * venue.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from datetime import datetime, timezone

import numpy as np

from services.discovery.embedding.vectors import (
    VectorLike,
    as_vector,
    centroid,
    cohesion,
    l2_normalize,
)
from services.discovery.taste.vocabulary import FEATURE_ORDER, features_of, words_for
from services.discovery.types import TasteProfile, VenueAttributes

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants (tunable; see settings.taste_*)
# ---------------------------------------------------------------------------

DEFAULT_DAMPING = 0.3

# Likes at which evidence reaches 1 - 1/e (~0.63)
LIKE_SATURATION = 4.0

WORD_THRESHOLD = 0.5
MAX_WORDS = 6

# Keeps venues orthogonal to the profile from dropping out of word scoring
_WEIGHT_FLOOR = 0.05

DEFAULT_LEARNING_RATE = 0.1


class TasteProfileBuilder:
    def __init__(
        self,
        dim: int,
        *,
        damping: float = DEFAULT_DAMPING,
        like_saturation: float = LIKE_SATURATION,
        word_threshold: float = WORD_THRESHOLD,
        max_words: int = MAX_WORDS,
    ) -> None:
        if damping < 0:
            raise ValueError("damping must be >= 0")
        if like_saturation <= 0:
            raise ValueError("like_saturation must be > 0")
        self._dim = dim
        self._damping = damping
        self._like_saturation = like_saturation
        self._word_threshold = word_threshold
        self._max_words = max_words

    def confidence(self, like_count: int, liked_cohesion: float) -> float:
        if like_count <= 0:
            return 0.0
        evidence = 1.0 - math.exp(-like_count / self._like_saturation)
        cap = min(1.0, max(0.0, liked_cohesion))
        return float(min(evidence, cap))

    def build(
        self,
        user_id: str,
        liked: Sequence[VectorLike],
        skipped: Sequence[VectorLike],
        liked_attributes: Sequence[VenueAttributes | None],
        neutral_vector: VectorLike,
        now: datetime | None = None,
    ) -> TasteProfile:
        now = now or datetime.now(timezone.utc)
        if len(liked_attributes) != len(liked):
            raise ValueError(
                f"liked_attributes has {len(liked_attributes)} entries for {len(liked)} likes"
            )

        liked_vecs = [as_vector(v, self._dim) for v in liked]
        skipped_vecs = [as_vector(v, self._dim) for v in skipped]
        swipe_count = len(liked_vecs) + len(skipped_vecs)

        if not liked_vecs:
            neutral = as_vector(neutral_vector, self._dim)
            logger.info("Undetermined taste profile for user %s (%d skips)", user_id, len(skipped_vecs))
            return TasteProfile(
                user_id=user_id,
                vector=tuple(float(x) for x in neutral),
                confidence=0.0,
                descriptive_words=(),
                generated_at=now,
                swipe_count=swipe_count,
                like_count=0,
            )

        vector = self._profile_vector(liked_vecs, skipped_vecs)
        conf = self.confidence(len(liked_vecs), cohesion(liked_vecs))
        words = self._descriptive_words(vector, liked_vecs, liked_attributes)

        logger.info(
            "Built taste profile for user %s: likes=%d skips=%d confidence=%.3f words=%s",
            user_id, len(liked_vecs), len(skipped_vecs), conf, words,
        )
        return TasteProfile(
            user_id=user_id,
            vector=tuple(float(x) for x in vector),
            confidence=conf,
            descriptive_words=tuple(words),
            generated_at=now,
            swipe_count=swipe_count,
            like_count=len(liked_vecs),
        )

    def nudge(
        self,
        profile: TasteProfile,
        venue_embedding: VectorLike,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        now: datetime | None = None,
    ) -> TasteProfile:
        """Blend a single newly liked venue into the profile vector."""
        if not 0.0 < learning_rate <= 1.0:
            raise ValueError("learning_rate must be in (0, 1]")
        old = as_vector(profile.vector, self._dim)
        venue = as_vector(venue_embedding, self._dim)
        blended = l2_normalize((1.0 - learning_rate) * old + learning_rate * venue)
        return TasteProfile(
            user_id=profile.user_id,
            vector=tuple(float(x) for x in blended),
            confidence=profile.confidence,
            descriptive_words=profile.descriptive_words,
            generated_at=now or datetime.now(timezone.utc),
            swipe_count=profile.swipe_count + 1,
            like_count=profile.like_count + 1,
        )

    # ------------------------------------------------------------------

    def _profile_vector(self, liked: list[np.ndarray], skipped: list[np.ndarray]) -> np.ndarray:
        liked_mean = centroid(liked)
        if skipped and self._damping > 0:
            damped = liked_mean - self._damping * centroid(skipped)
            if float(np.linalg.norm(damped)) > 0.0:
                return l2_normalize(damped)
        return l2_normalize(liked_mean)

    def _descriptive_words(
        self,
        vector: np.ndarray,
        liked: list[np.ndarray],
        attributes: Sequence[VenueAttributes | None],
    ) -> list[str]:
        unit = l2_normalize(vector)
        totals = dict.fromkeys(FEATURE_ORDER, 0.0)
        weight_sum = 0.0
        for vec, attrs in zip(liked, attributes):
            if attrs is None:
                continue
            weight = max(float(np.dot(unit, l2_normalize(vec))), 0.0) + _WEIGHT_FLOOR
            weight_sum += weight
            for feat, present in features_of(attrs).items():
                totals[feat] += weight * present

        if weight_sum == 0.0:
            return []

        scores = {feat: total / weight_sum for feat, total in totals.items()}
        selected = [f for f in FEATURE_ORDER if scores[f] >= self._word_threshold]
        # Stable sort keeps vocabulary order among equal scores
        selected.sort(key=lambda f: -scores[f])
        return words_for(selected, self._max_words)
