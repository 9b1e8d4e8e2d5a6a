"""
Review Analyzer - LLM-Based Structured Review Generation
=========================================================

ARCHITECTURAL DECISION:
- Uses any OpenAI-compatible chat completions endpoint (gpt-4o-mini default)
- Falls back to keyword heuristics if no API key, on network errors,
  or when the response holds no JSON object
- Response handling is decode -> validate/repair (see domain.review_schema)

GUARANTEE:
- analyze() always returns a structurally valid StructuredReview.
  Model failures are recovered locally and never reach the diner.
"""

import logging
from typing import Optional

import requests

from ..config import LLMSettings, get_settings
from ...domain.heuristics import HeuristicReviewAnalyzer
from ...domain.models import StructuredReview
from ...domain.review_schema import extract_json_object, validate_review

logger = logging.getLogger(__name__)


class ReviewAnalyzerError(Exception):
    """Raised internally when the model call cannot produce a payload."""
    pass


class StructuredReviewAnalyzer:
    """
    Turns free-form feedback into a StructuredReview.

    USAGE:
        analyzer = StructuredReviewAnalyzer()
        review = analyzer.analyze("The pasta was great but the music too loud", "Luigi's")
        print(review.sentiment_score)

    FALLBACK BEHAVIOR:
    - If no API key: uses HeuristicReviewAnalyzer
    - If API fails or times out: uses HeuristicReviewAnalyzer
    - If response has no JSON object: uses HeuristicReviewAnalyzer
    - If JSON is incomplete or out of range: fields are repaired in place
    """

    SYSTEM_PROMPT = (
        "You analyze restaurant feedback and turn it into a structured, first-person review. "
        "Reply with ONLY one JSON object and no other text. "
        "You MUST provide a value for every category, even if the customer did not mention it."
    )

    PROMPT_TEMPLATE = (
        "Analyze my feedback for {restaurant}.\n"
        "The feedback was: '''{transcript}'''\n\n"
        "Write every field in first person (I, my, me), as a review I could post publicly.\n"
        "If I did not mention a category, use EXACTLY the sentence given for it below.\n\n"
        "Return this JSON object:\n"
        "{{\n"
        '  "sentiment": <integer 1-5>,\n'
        '  "summary": "brief first-person summary of my experience",\n'
        '  "food": "my view of the food and drinks, or \'Nothing to say about food\'",\n'
        '  "service": "my view of the service, or \'Nothing to say about service\'",\n'
        '  "atmosphere": "my view of the ambiance, or \'Nothing to say about atmosphere\'",\n'
        '  "music": "my view of music and entertainment, or '
        '\'Nothing to say about music and entertainment\'",\n'
        '  "key_points": ["at least one specific point"],\n'
        '  "suggested_improvements": ["required when sentiment is 3 or lower, otherwise may be empty"]\n'
        "}}"
    )

    def __init__(self, settings: Optional[LLMSettings] = None, fallback: Optional[HeuristicReviewAnalyzer] = None):
        """Initialize analyzer with settings."""
        settings = settings or get_settings().llm
        self._api_key = settings.api_key
        self._api_url = settings.api_url
        self._model = settings.model
        self._temperature = settings.temperature
        self._timeout = settings.timeout_seconds
        self._max_tokens = settings.max_tokens
        self._fallback = fallback or HeuristicReviewAnalyzer()

        if not self._api_key:
            logger.warning(
                "No OPENAI_API_KEY set. "
                "Review analysis will use keyword heuristics."
            )

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def analyze(self, transcript: str, restaurant_name: str = "this restaurant") -> StructuredReview:
        """
        Analyze feedback text.

        Args:
            transcript: Typed or transcribed feedback (may be empty).
            restaurant_name: Used in the prompt and default summary.

        Returns:
            StructuredReview that satisfies every schema invariant.
        """
        transcript = transcript or ""
        restaurant_name = restaurant_name or "this restaurant"

        if self._api_key and transcript.strip():
            try:
                payload = self._request_review(transcript, restaurant_name)
                return validate_review(payload, restaurant_name, source="model")
            except ReviewAnalyzerError as e:
                logger.warning(f"{e}, falling back to heuristics")
            except Exception as e:
                logger.exception(f"Unexpected error in LLM analysis: {e}")

        return self._fallback.analyze(transcript, restaurant_name)

    def _request_review(self, transcript: str, restaurant_name: str) -> dict:
        """
        Call the chat completions API and decode the JSON payload.

        Raises:
            ReviewAnalyzerError: on timeout, HTTP/network error, or no JSON.
        """
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": self.SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": self.PROMPT_TEMPLATE.format(
                        restaurant=restaurant_name, transcript=transcript
                    ),
                },
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }

        try:
            response = requests.post(
                self._api_url,
                headers=headers,
                json=payload,
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()

        except requests.Timeout:
            raise ReviewAnalyzerError("LLM API timeout")

        except requests.RequestException as e:
            raise ReviewAnalyzerError(f"LLM API error: {e}")

        except ValueError as e:
            raise ReviewAnalyzerError(f"LLM API returned invalid JSON envelope: {e}")

        content = self._extract_response_content(data)
        parsed = extract_json_object(content)
        if parsed is None:
            logger.debug(f"Unparseable LLM content: {content[:200]!r}")
            raise ReviewAnalyzerError("LLM response contained no JSON object")

        logger.debug("LLM returned a structured review payload")
        return parsed

    def _extract_response_content(self, data: dict) -> str:
        """Extract text content from API response."""
        try:
            choices = data.get("choices", [])
            if choices:
                message = choices[0].get("message", {})
                return (message.get("content") or "").strip()
        except (AttributeError, KeyError, IndexError, TypeError):
            pass
        return ""
