from feedback_rewards.domain.heuristics import HeuristicReviewAnalyzer, score_sentiment, split_sentences
from feedback_rewards.domain.review_schema import CATEGORY_SENTINELS, DEFAULT_KEY_POINT, DEFAULT_SUGGESTION


def test_mixed_feedback_scores_below_neutral_with_suggestions() -> None:
    review = HeuristicReviewAnalyzer().analyze(
        "The food was amazing but service was slow and the waiter was rude", "Luigi's"
    )

    assert review.sentiment_score <= 3
    assert review.food != CATEGORY_SENTINELS["food"]
    assert review.service != CATEGORY_SENTINELS["service"]
    assert review.atmosphere == CATEGORY_SENTINELS["atmosphere"]
    assert review.music == CATEGORY_SENTINELS["music"]
    assert review.improvement_suggestions == [
        "I hope they can improve their service quality.",
        "I hope they can improve their food quality.",
    ]
    assert review.source == "fallback"


def test_positive_feedback_has_no_suggestions() -> None:
    review = HeuristicReviewAnalyzer().analyze(
        "The pasta was delicious and the staff were friendly. Lovely place with great music!"
    )

    assert review.sentiment_score == 5
    assert review.food == "I commented on the food: The pasta was delicious and the staff were friendly."
    assert review.music == "I commented on the music and entertainment: Lovely place with great music."
    assert review.summary == "The pasta was delicious and the staff were friendly."
    assert review.improvement_suggestions == []


def test_empty_transcript_gets_defaults() -> None:
    review = HeuristicReviewAnalyzer().analyze("", "Luigi's")

    assert review.sentiment_score == 3
    assert review.summary == "I had an experience at Luigi's."
    assert review.key_points == [DEFAULT_KEY_POINT]
    assert review.improvement_suggestions == [DEFAULT_SUGGESTION]


def test_key_points_are_capped_at_three() -> None:
    text = (
        "The first course came out quickly. "
        "The second course was a little salty. "
        "The third course was the highlight. "
        "The fourth course was forgettable."
    )
    review = HeuristicReviewAnalyzer().analyze(text)

    assert review.key_points == [
        "The first course came out quickly.",
        "The second course was a little salty.",
        "The third course was the highlight.",
    ]


def test_analysis_is_deterministic() -> None:
    analyzer = HeuristicReviewAnalyzer()
    text = "Cozy room, but the burger was bland and cold."
    assert analyzer.analyze(text) == analyzer.analyze(text)


def test_score_sentiment_counts_distinct_words() -> None:
    assert score_sentiment("good good good") == 4
    assert score_sentiment("great and delicious") == 5
    assert score_sentiment("slow") == 2
    assert score_sentiment("slow, cold and bland") == 1
    assert score_sentiment("good but slow") == 3


def test_split_sentences_drops_fragments() -> None:
    assert split_sentences("Great. The steak was perfect!\nOk") == ["The steak was perfect"]
