from .settings import Settings, LLMSettings, SpeechSettings, PointsSettings, get_settings

__all__ = ["Settings", "LLMSettings", "SpeechSettings", "PointsSettings", "get_settings"]
