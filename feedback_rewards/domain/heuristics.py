"""
Heuristic Review Analyzer - Deterministic Keyword Fallback
===========================================================

Used whenever the language model cannot be reached or returns something
unusable. Same input always gives the same review.

Simple but effective for obvious cases:
- categories are "mentioned" when a sentence hits that category's vocabulary
- sentiment comes from distinct positive vs negative keyword hits
"""

import logging
import re
from typing import Dict, List, Sequence

from .models import StructuredReview
from .review_schema import (
    CATEGORY_SENTINELS,
    DEFAULT_KEY_POINT,
    DEFAULT_SUGGESTION,
    DEFAULT_SUMMARY,
    NEUTRAL_SENTIMENT,
)

logger = logging.getLogger(__name__)


CATEGORY_KEYWORDS: Dict[str, List[str]] = {
    "food": [
        "food", "dish", "dishes", "meal", "meals", "taste", "tasty", "tasted", "flavor", "flavour",
        "cook", "cooked", "eat", "ate", "drink", "drinks", "menu", "dessert", "starter", "portion",
        "portions", "burger", "pizza", "steak", "pasta", "coffee", "wine", "cocktail", "cocktails",
    ],
    "service": [
        "service", "staff", "waiter", "waiters", "waitress", "server", "servers", "employee",
        "manager", "friendly", "help", "helpful", "host", "hostess", "bartender", "served",
    ],
    "atmosphere": [
        "atmosphere", "ambiance", "ambience", "decor", "interior", "place", "room", "lighting",
        "noise", "noisy", "crowd", "crowded", "vibe", "seating", "clean", "dirty", "cozy", "view",
    ],
    "music": [
        "music", "dj", "band", "entertainment", "sound", "volume", "song", "songs", "play",
        "played", "playing", "live", "karaoke", "playlist",
    ],
}

CATEGORY_LABELS = {
    "food": "the food",
    "service": "the service",
    "atmosphere": "the atmosphere",
    "music": "the music and entertainment",
}

POSITIVE_KEYWORDS = [
    "good", "great", "excellent", "amazing", "delicious", "enjoyed", "love", "loved", "wonderful",
    "fantastic", "nice", "best", "perfect", "outstanding", "friendly", "tasty", "fresh", "awesome",
    "lovely", "superb", "happy", "recommend",
]

NEGATIVE_KEYWORDS = [
    "bad", "poor", "terrible", "awful", "disappointing", "disappointed", "mediocre", "slow", "rude",
    "cold", "undercooked", "overcooked", "worst", "hate", "dirty", "bland", "horrible", "noisy",
    "expensive", "overpriced", "stale", "burnt",
]

MIN_SENTENCE_LENGTH = 5
MIN_KEY_POINT_LENGTH = 15
MAX_KEY_POINTS = 3

_SENTENCE_SPLIT = re.compile(r"[.!?\n]+")


def _compile(words: Sequence[str]) -> re.Pattern:
    return re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")\b", re.IGNORECASE)


_CATEGORY_PATTERNS = {name: _compile(words) for name, words in CATEGORY_KEYWORDS.items()}
_WORD = re.compile(r"[a-z0-9']+")


def split_sentences(text: str) -> List[str]:
    """Sentences with more than a handful of characters, in order."""
    parts = (part.strip() for part in _SENTENCE_SPLIT.split(text or ""))
    return [part for part in parts if len(part) > MIN_SENTENCE_LENGTH]


def score_sentiment(text: str) -> int:
    """
    1-5 score from distinct keyword hits.

    More positive hits than negative lands above neutral, more negative
    lands below, a tie is neutral 3.
    """
    words = set(_WORD.findall((text or "").lower()))
    positive = sum(1 for kw in POSITIVE_KEYWORDS if kw in words)
    negative = sum(1 for kw in NEGATIVE_KEYWORDS if kw in words)

    if positive > negative + 1:
        return 5
    if positive > negative:
        return 4
    if negative > positive + 1:
        return 1
    if negative > positive:
        return 2
    return NEUTRAL_SENTIMENT


def _as_sentence(text: str) -> str:
    text = text.strip()
    text = text[0].upper() + text[1:] if text else text
    return text if text.endswith((".", "!", "?")) else text + "."


class HeuristicReviewAnalyzer:
    """
    Keyword-based structured review builder.

    USAGE:
        analyzer = HeuristicReviewAnalyzer()
        review = analyzer.analyze("The food was great", "Luigi's")
    """

    def analyze(self, transcript: str, restaurant_name: str = "this restaurant") -> StructuredReview:
        text = transcript or ""
        sentences = split_sentences(text)
        sentiment = score_sentiment(text)

        comments = dict(CATEGORY_SENTINELS)
        mentioned = set()
        for sentence in sentences:
            for category, pattern in _CATEGORY_PATTERNS.items():
                if category in mentioned or not pattern.search(sentence):
                    continue
                mentioned.add(category)
                comments[category] = (
                    f"I commented on {CATEGORY_LABELS[category]}: {_as_sentence(sentence)}"
                )

        summary = (
            _as_sentence(sentences[0])
            if sentences
            else DEFAULT_SUMMARY.format(restaurant=restaurant_name or "this restaurant")
        )

        key_points = [
            _as_sentence(s) for s in sentences if len(s) > MIN_KEY_POINT_LENGTH
        ][:MAX_KEY_POINTS] or [DEFAULT_KEY_POINT]

        suggestions: List[str] = []
        if sentiment <= NEUTRAL_SENTIMENT:
            if "service" in mentioned:
                suggestions.append("I hope they can improve their service quality.")
            if "food" in mentioned:
                suggestions.append("I hope they can improve their food quality.")
            if not suggestions:
                suggestions.append(DEFAULT_SUGGESTION)

        logger.debug(f"Heuristic review: sentiment={sentiment}, mentioned={sorted(mentioned)}")

        return StructuredReview(
            summary=summary,
            food=comments["food"],
            service=comments["service"],
            atmosphere=comments["atmosphere"],
            music=comments["music"],
            sentiment_score=sentiment,
            key_points=key_points,
            improvement_suggestions=suggestions,
            source="fallback",
        )
