"""
Review Schema - Decode and Validate Language Model Output
==========================================================

Two separable steps:

1. ``extract_json_object``: raw model text -> loosely-typed dict (or None)
2. ``validate_review``: loosely-typed dict -> StructuredReview

The validator repairs instead of rejecting, so whatever the model returned,
the caller receives a structurally valid review. Nothing here touches the
network, which keeps both steps unit-testable on their own.
"""

import json
import logging
import math
import re
from typing import Any, Dict, List, Optional

from .models import StructuredReview

logger = logging.getLogger(__name__)

CATEGORY_SENTINELS = {
    "food": "Nothing to say about food",
    "service": "Nothing to say about service",
    "atmosphere": "Nothing to say about atmosphere",
    "music": "Nothing to say about music and entertainment",
}

# Older prompt versions used these keys
CATEGORY_ALIASES = {
    "food": ("food", "food_quality"),
    "service": ("service",),
    "atmosphere": ("atmosphere", "ambiance"),
    "music": ("music", "music_and_entertainment"),
}

NEUTRAL_SENTIMENT = 3
DEFAULT_SUMMARY = "I had an experience at {restaurant}."
DEFAULT_KEY_POINT = "I wanted to share my experience."
DEFAULT_SUGGESTION = "I hope they can make improvements to enhance the overall experience."

_EMPTY_EQUIVALENTS = {
    "", "n/a", "na", "none", "null", "nil", "nothing", "no", "-",
    "not mentioned", "no mention", "none mentioned", "not applicable",
    "no comment", "no comments", "nothing mentioned",
}

_EMPTY_PREFIXES = ("nothing to say", "not mentioned", "no mention", "did not mention", "didn't mention")

_decoder = json.JSONDecoder()


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the first JSON object embedded in ``text``.

    Every ``{`` is tried as a starting point, so surrounding prose, markdown
    fences and stray braces before the real payload are skipped.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        try:
            value, _ = _decoder.raw_decode(text, start)
        except ValueError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)

    logger.debug("No JSON object found in model response")
    return None


def coerce_sentiment(value: Any) -> int:
    """Nearest integer in [1, 5]; neutral 3 when missing or unreadable."""
    number: Optional[float] = None

    if isinstance(value, bool):
        number = None
    elif isinstance(value, int):
        # Arbitrarily large JSON integers overflow float()
        return max(1, min(5, value))
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        match = re.search(r"-?\d+(?:\.\d+)?", value)
        if match:
            number = float(match.group())

    if number is None or math.isnan(number) or math.isinf(number):
        return NEUTRAL_SENTIMENT

    return max(1, min(5, int(math.floor(number + 0.5))))


def is_empty_comment(value: Any) -> bool:
    """True for blank values and phrases meaning "nothing was said"."""
    if value is None:
        return True
    if not isinstance(value, str):
        value = str(value)
    normalized = re.sub(r"[\s.!'\"]+$", "", value.strip().lower())
    if normalized in _EMPTY_EQUIVALENTS:
        return True
    return normalized.startswith(_EMPTY_PREFIXES)


def clean_string_list(value: Any) -> List[str]:
    """Keep only non-empty strings; a lone string becomes a one-item list."""
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _first_present(data: Dict[str, Any], keys) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


def validate_review(
    data: Optional[Dict[str, Any]],
    restaurant_name: str = "this restaurant",
    source: str = "model",
) -> StructuredReview:
    """
    Repair a loosely-typed model payload into a StructuredReview.

    Guarantees: sentiment in [1, 5], every category non-empty, at least one
    key point, and at least one suggestion whenever sentiment <= 3.
    """
    data = data if isinstance(data, dict) else {}

    sentiment = coerce_sentiment(_first_present(data, ("sentiment", "sentiment_score")))

    categories = {}
    for category, keys in CATEGORY_ALIASES.items():
        raw = _first_present(data, keys)
        if is_empty_comment(raw):
            categories[category] = CATEGORY_SENTINELS[category]
        else:
            categories[category] = str(raw).strip()

    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        summary = DEFAULT_SUMMARY.format(restaurant=restaurant_name or "this restaurant")

    key_points = clean_string_list(_first_present(data, ("key_points", "specific_points")))
    if not key_points:
        key_points = [DEFAULT_KEY_POINT]

    suggestions = clean_string_list(
        _first_present(data, ("suggested_improvements", "improvement_suggestions"))
    )
    if sentiment <= NEUTRAL_SENTIMENT and not suggestions:
        suggestions = [DEFAULT_SUGGESTION]

    return StructuredReview(
        summary=summary.strip(),
        food=categories["food"],
        service=categories["service"],
        atmosphere=categories["atmosphere"],
        music=categories["music"],
        sentiment_score=sentiment,
        key_points=key_points,
        improvement_suggestions=suggestions,
        source=source,
    )
