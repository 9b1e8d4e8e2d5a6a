from .review_analyzer import StructuredReviewAnalyzer, ReviewAnalyzerError

__all__ = ["StructuredReviewAnalyzer", "ReviewAnalyzerError"]
