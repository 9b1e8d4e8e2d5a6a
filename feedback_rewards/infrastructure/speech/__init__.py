from .archive import LocalAudioArchive
from .providers import (
    SpeechProvider,
    WhisperProvider,
    LelapaProvider,
    LocalRecognizerProvider,
    TranscriptionError,
    build_providers,
)
from .racer import TranscriptionRacer, ProviderOutcome, select_transcript

__all__ = [
    "LocalAudioArchive",
    "SpeechProvider",
    "WhisperProvider",
    "LelapaProvider",
    "LocalRecognizerProvider",
    "TranscriptionError",
    "build_providers",
    "TranscriptionRacer",
    "ProviderOutcome",
    "select_transcript",
]
