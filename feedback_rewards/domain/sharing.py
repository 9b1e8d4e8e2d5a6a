"""Formats a stored review as text a diner can paste into a public review site."""

import re
from typing import Optional
from urllib.parse import quote

from .models import StructuredReview
from .review_schema import CATEGORY_SENTINELS

MAX_SHARED_POINTS = 3

GOOGLE_WRITE_REVIEW_URL = "https://search.google.com/local/writereview?placeid={place_id}"
GOOGLE_MAPS_SEARCH_URL = "https://www.google.com/maps/search/{query}"
GOOGLE_MAPS_URL = "https://www.google.com/maps"


def format_review_for_sharing(review: StructuredReview, restaurant_name: str = "this restaurant") -> str:
    stars = "⭐" * max(1, min(5, review.sentiment_score))
    text = f"{stars} {review.summary}"

    highlights = []
    for label, category in (("Food", "food"), ("Service", "service"), ("Atmosphere", "atmosphere")):
        comment = getattr(review, category)
        if comment and comment != CATEGORY_SENTINELS[category]:
            highlights.append(f"{label}: {comment}")
    if highlights:
        text += "\n\n" + "\n".join(highlights)

    points = [p for p in review.key_points if p.strip()][:MAX_SHARED_POINTS]
    if points:
        text += "\n\nHighlights:\n" + "\n".join(f"• {p}" for p in points)

    if restaurant_name and restaurant_name.lower() not in text.lower():
        tag = re.sub(r"\s+", "", restaurant_name)
        text += f"\n\n#{tag} #RestaurantReview"

    return text


def generate_review_link(restaurant_name: str, place_id: Optional[str] = None) -> str:
    """
    Where the diner pastes the shared text.

    A known place id opens Google's write-review dialog directly; otherwise
    the diner lands on a Maps search for the restaurant.
    """
    if place_id and place_id.strip():
        return GOOGLE_WRITE_REVIEW_URL.format(place_id=quote(place_id.strip(), safe=""))
    if restaurant_name and restaurant_name.strip():
        return GOOGLE_MAPS_SEARCH_URL.format(query=quote(restaurant_name.strip(), safe=""))
    return GOOGLE_MAPS_URL
