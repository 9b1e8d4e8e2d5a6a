"""
Feedback Service - Recording/Typing to Reward
==============================================

Use cases a diner triggers:
- submit typed feedback, or a recording (transcribed first)
- the analyzed review is stored and the first qualifying action of the day
  earns points
- share a stored review (formatted text for a public review site), which
  also counts as a qualifying action; the diner also gets a link to the
  restaurant's review page
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Union

from .points_ledger import PointsLedger
from ..domain.models import EarnReason, EarnResult, Review, TranscriptionFailure, TranscriptionFailureReason
from ..domain.sharing import format_review_for_sharing, generate_review_link
from ..infrastructure.llm import StructuredReviewAnalyzer
from ..infrastructure.persistence import Database
from ..infrastructure.speech import TranscriptionRacer

logger = logging.getLogger(__name__)

MIN_FEEDBACK_LENGTH = 10


class FeedbackTooShortError(ValueError):
    """Typed feedback below the minimum length."""
    pass


class ReviewNotFoundError(LookupError):
    pass


@dataclass
class FeedbackOutcome:
    review: Review
    earn: EarnResult


@dataclass
class ShareOutcome:
    text: str
    link: str
    earn: EarnResult


class FeedbackService:
    """Runs the feedback-to-reward pipeline for one submission at a time."""

    def __init__(
        self,
        db: Database,
        analyzer: StructuredReviewAnalyzer,
        ledger: PointsLedger,
        racer: Optional[TranscriptionRacer] = None,
        clock: Callable[[], datetime] = datetime.now,
        place_id: Optional[str] = None,
    ):
        self._db = db
        self._analyzer = analyzer
        self._ledger = ledger
        self._racer = racer
        self._clock = clock
        self._place_id = place_id

    def submit_text(self, user_id: str, restaurant_id: str, restaurant_name: str, text: str) -> FeedbackOutcome:
        if not text or len(text.strip()) < MIN_FEEDBACK_LENGTH:
            raise FeedbackTooShortError(
                f"Feedback must be at least {MIN_FEEDBACK_LENGTH} characters long"
            )
        return self._analyze_and_store(user_id, restaurant_id, restaurant_name, text.strip())

    def submit_audio(
        self,
        user_id: str,
        restaurant_id: str,
        restaurant_name: str,
        audio: bytes,
        filename: str = "feedback.wav",
        mime_type: str = "audio/wav",
    ) -> Union[FeedbackOutcome, TranscriptionFailure]:
        """
        Transcribe, then analyze and store.

        A TranscriptionFailure is returned as-is so the caller can ask the
        diner to record again or type instead.
        """
        if self._racer is None:
            return TranscriptionFailure(reason=TranscriptionFailureReason.NOT_CONFIGURED)

        stamp = self._clock().strftime("%Y-%m-%dT%H-%M-%S-%f")
        archive_name = f"review_{restaurant_id}_{user_id}_{stamp}.wav"
        transcript = self._racer.transcribe(audio, filename=filename, mime_type=mime_type, archive_name=archive_name)
        if isinstance(transcript, TranscriptionFailure):
            return transcript

        return self._analyze_and_store(user_id, restaurant_id, restaurant_name, transcript)

    def _analyze_and_store(self, user_id: str, restaurant_id: str, restaurant_name: str, transcript: str) -> FeedbackOutcome:
        analysis = self._analyzer.analyze(transcript, restaurant_name)
        review = self._db.add_review(
            user_id, restaurant_id, restaurant_name, transcript, analysis, self._clock()
        )
        logger.info(
            f"Review {review.id} saved for user {user_id} "
            f"(sentiment {analysis.sentiment_score}, {analysis.source})"
        )
        earn = self._ledger.earn_for(user_id, EarnReason.FEEDBACK_SAVED)
        return FeedbackOutcome(review=review, earn=earn)

    def share_review(self, user_id: str, review_id: str) -> ShareOutcome:
        review = self._db.get_review(review_id)
        if review is None or review.user_id != user_id:
            raise ReviewNotFoundError(review_id)

        text = format_review_for_sharing(review.analysis, review.restaurant_name or "this restaurant")
        link = generate_review_link(review.restaurant_name, self._place_id)
        earn = self._ledger.earn_for(user_id, EarnReason.REVIEW_SHARED)
        return ShareOutcome(text=text, link=link, earn=earn)

    def reviews_for(self, user_id: str) -> List[Review]:
        return self._db.get_reviews_for_user(user_id)
