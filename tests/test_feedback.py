import time

import pytest

from feedback_rewards.application import (
    FeedbackService,
    FeedbackTooShortError,
    PointsLedger,
    ReviewNotFoundError,
)
from feedback_rewards.domain.models import EarnStatus, TranscriptionFailure, TranscriptionFailureReason
from feedback_rewards.domain.sharing import generate_review_link
from feedback_rewards.infrastructure.config import LLMSettings, PointsSettings
from feedback_rewards.infrastructure.llm import StructuredReviewAnalyzer
from feedback_rewards.infrastructure.speech import LocalAudioArchive, LocalRecognizerProvider, TranscriptionRacer

FEEDBACK = "The food was amazing but service was slow and the waiter was rude"


@pytest.fixture
def ledger(db, clock):
    return PointsLedger(db, PointsSettings(feedback_saved=2, review_shared=1), clock=clock)


def _service(db, ledger, clock, racer=None, place_id=None) -> FeedbackService:
    analyzer = StructuredReviewAnalyzer(LLMSettings(api_key=""))
    return FeedbackService(db, analyzer, ledger, racer=racer, clock=clock, place_id=place_id)


def test_text_feedback_is_stored_and_earns(db, ledger, clock) -> None:
    service = _service(db, ledger, clock)

    outcome = service.submit_text("diner-1", "bistro", "Luigi's", f"  {FEEDBACK}  ")

    assert outcome.earn.status is EarnStatus.EARNED
    assert outcome.earn.balance == 2
    review = outcome.review
    assert review.transcript == FEEDBACK
    assert review.analysis.sentiment_score == 2
    assert db.get_review(review.id) == review


def test_short_feedback_is_rejected(db, ledger, clock) -> None:
    service = _service(db, ledger, clock)

    with pytest.raises(FeedbackTooShortError):
        service.submit_text("diner-1", "bistro", "Luigi's", "  too bad ")

    assert service.reviews_for("diner-1") == []
    assert ledger.get_balance("diner-1") == 0


def test_second_submission_is_stored_without_points(db, ledger, clock) -> None:
    service = _service(db, ledger, clock)
    service.submit_text("diner-1", "bistro", "Luigi's", FEEDBACK)

    clock.advance(minutes=5)
    outcome = service.submit_text("diner-1", "bistro", "Luigi's", "Came back for dessert, it was lovely")

    assert outcome.earn.status is EarnStatus.ALREADY_EARNED_TODAY
    assert ledger.get_balance("diner-1") == 2
    assert [r.transcript for r in service.reviews_for("diner-1")] == [
        "Came back for dessert, it was lovely",
        FEEDBACK,
    ]


def test_share_review_formats_text_and_earns_next_day(db, ledger, clock) -> None:
    service = _service(db, ledger, clock)
    review = service.submit_text("diner-1", "bistro", "Luigi's", FEEDBACK).review

    same_day = service.share_review("diner-1", review.id)
    assert same_day.earn.status is EarnStatus.ALREADY_EARNED_TODAY
    assert same_day.text.startswith("⭐⭐ ")
    assert "Food: " in same_day.text
    assert "#Luigi's #RestaurantReview" in same_day.text
    assert same_day.link == "https://www.google.com/maps/search/Luigi%27s"

    clock.advance(days=1)
    next_day = service.share_review("diner-1", review.id)
    assert next_day.earn.points_awarded == 1
    assert ledger.get_balance("diner-1") == 3
    assert ledger.history("diner-1")[0].reason == "Copied to Google Reviews"


def test_cannot_share_someone_elses_review(db, ledger, clock) -> None:
    service = _service(db, ledger, clock)
    review = service.submit_text("diner-1", "bistro", "Luigi's", FEEDBACK).review

    with pytest.raises(ReviewNotFoundError):
        service.share_review("diner-2", review.id)
    with pytest.raises(ReviewNotFoundError):
        service.share_review("diner-1", "missing")


def test_audio_without_racer_is_not_configured(db, ledger, clock) -> None:
    result = _service(db, ledger, clock).submit_audio("diner-1", "bistro", "Luigi's", b"audio")

    assert isinstance(result, TranscriptionFailure)
    assert result.reason is TranscriptionFailureReason.NOT_CONFIGURED


def test_audio_feedback_is_transcribed_and_archived(db, ledger, clock, tmp_path) -> None:
    racer = TranscriptionRacer(
        [LocalRecognizerProvider(lambda audio: FEEDBACK)],
        archive=LocalAudioArchive(tmp_path / "audio"),
    )
    service = _service(db, ledger, clock, racer=racer)

    outcome = service.submit_audio("diner-1", "bistro", "Luigi's", b"RIFF")

    assert outcome.review.transcript == FEEDBACK
    assert outcome.earn.earned

    deadline = time.monotonic() + 2.0
    while not list((tmp_path / "audio").glob("*.wav")) and time.monotonic() < deadline:
        time.sleep(0.01)
    [archived] = list((tmp_path / "audio").glob("*.wav"))
    assert archived.name.startswith("review_bistro_diner-1_2024-03-14T12-00-00")


def test_unusable_audio_earns_nothing(db, ledger, clock) -> None:
    racer = TranscriptionRacer([LocalRecognizerProvider(lambda audio: "uh")])
    service = _service(db, ledger, clock, racer=racer)

    result = service.submit_audio("diner-1", "bistro", "Luigi's", b"RIFF")

    assert isinstance(result, TranscriptionFailure)
    assert result.reason is TranscriptionFailureReason.NO_USABLE_TRANSCRIPT
    assert service.reviews_for("diner-1") == []
    assert ledger.get_balance("diner-1") == 0


def test_share_link_uses_place_id_when_configured(db, ledger, clock) -> None:
    service = _service(db, ledger, clock, place_id="ChIJ123abc")
    review = service.submit_text("diner-1", "bistro", "Luigi's", FEEDBACK).review

    link = service.share_review("diner-1", review.id).link

    assert link == "https://search.google.com/local/writereview?placeid=ChIJ123abc"


def test_generate_review_link() -> None:
    assert generate_review_link("Luigi's", "ChIJ123abc") == (
        "https://search.google.com/local/writereview?placeid=ChIJ123abc"
    )
    assert generate_review_link("Mama's Kitchen & Bar") == (
        "https://www.google.com/maps/search/Mama%27s%20Kitchen%20%26%20Bar"
    )
    assert generate_review_link("Luigi's", "  ") == "https://www.google.com/maps/search/Luigi%27s"
    assert generate_review_link("") == "https://www.google.com/maps"
