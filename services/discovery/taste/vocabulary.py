"""
Descriptive vocabulary for taste profiles.

Each venue attribute feature maps to an ordered list of words. The first
word is the feature's primary descriptor; later words are only used when
there is room left after every selected feature got its primary word.
"""

from __future__ import annotations

from services.discovery.types import PricingTier, VenueAttributes

# Feature key -> words, primary first. Dict order is the tie-break order.
FEATURE_WORDS: dict[str, list[str]] = {
    "estate": ["Estate", "Elegant"],
    "historic": ["Historic", "Vintage", "Classic"],
    "lodging": ["Destination", "Retreat"],
    "pricing:luxury": ["Luxurious", "Grand"],
    "pricing:high": ["Refined", "Romantic"],
    "pricing:medium": ["Charming"],
    "pricing:low": ["Rustic", "Relaxed"],
}

FEATURE_ORDER: list[str] = list(FEATURE_WORDS)


def features_of(attrs: VenueAttributes) -> dict[str, float]:
    """0/1 indicator per feature for one venue."""
    tier = attrs.pricing_tier
    return {
        "estate": 1.0 if attrs.is_estate else 0.0,
        "historic": 1.0 if attrs.is_historic else 0.0,
        "lodging": 1.0 if attrs.has_lodging else 0.0,
        "pricing:luxury": 1.0 if tier is PricingTier.LUXURY else 0.0,
        "pricing:high": 1.0 if tier is PricingTier.HIGH else 0.0,
        "pricing:medium": 1.0 if tier is PricingTier.MEDIUM else 0.0,
        "pricing:low": 1.0 if tier is PricingTier.LOW else 0.0,
    }


def words_for(features: list[str], max_words: int) -> list[str]:
    """Primary word of each feature first, then secondary words, deduplicated."""
    words: list[str] = []
    depth = 0
    while len(words) < max_words:
        added_any = False
        for feat in features:
            options = FEATURE_WORDS[feat]
            if depth < len(options):
                added_any = True
                word = options[depth]
                if word not in words:
                    words.append(word)
                    if len(words) == max_words:
                        break
        if not added_any:
            break
        depth += 1
    return words
