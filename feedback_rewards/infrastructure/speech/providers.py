"""
Speech Providers - Abstraction Layer for Speech-to-Text
========================================================

Provides a unified interface over the speech-to-text backends the
TranscriptionRacer launches side by side.

USAGE:
    provider = WhisperProvider(api_key="sk-...")
    text = provider.transcribe(audio_bytes)

    # Any in-process engine can join the race
    provider = LocalRecognizerProvider(my_engine.recognize)
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import requests

from ..config import SpeechSettings

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """Raised by a provider when it cannot produce a transcript."""
    pass


class SpeechProvider(ABC):
    """
    Abstract base class for speech-to-text providers.
    Implement this interface to add new transcription backends.
    """

    name: str = "provider"
    timeout_seconds: float = 30

    @property
    @abstractmethod
    def available(self) -> bool:
        """True when the provider is configured and can be called."""
        ...

    @abstractmethod
    def transcribe(self, audio: bytes, filename: str = "feedback.wav", mime_type: str = "audio/wav") -> str:
        """Return the transcript. Raises TranscriptionError on failure."""
        ...


class WhisperProvider(SpeechProvider):
    """OpenAI audio transcription API (high quality, primary)."""

    name = "whisper"

    def __init__(
        self,
        api_key: str = "",
        api_url: str = "https://api.openai.com/v1/audio/transcriptions",
        model: str = "whisper-1",
        timeout_seconds: float = 30,
    ):
        self._api_key = api_key
        self._api_url = api_url
        self._model = model
        self.timeout_seconds = timeout_seconds

    @property
    def available(self) -> bool:
        return bool(self._api_key)

    def transcribe(self, audio: bytes, filename: str = "feedback.wav", mime_type: str = "audio/wav") -> str:
        if not self.available:
            raise TranscriptionError("Whisper API key not configured")

        try:
            response = requests.post(
                self._api_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                files={"file": (filename, audio, mime_type)},
                data={"model": self._model, "response_format": "json"},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            raise TranscriptionError("Whisper request timed out")
        except requests.RequestException as e:
            raise TranscriptionError(f"Whisper request failed: {e}")
        except ValueError as e:
            raise TranscriptionError(f"Whisper returned invalid JSON: {e}")

        return str(data.get("text") or "").strip()


class LelapaProvider(SpeechProvider):
    """Lelapa Vulavula synchronous file transcription (secondary)."""

    name = "lelapa"

    def __init__(
        self,
        api_token: str = "",
        api_url: str = "https://vulavula-services.lelapa.ai/api/v2alpha/transcribe/sync/file",
        timeout_seconds: float = 25,
    ):
        self._api_token = api_token
        self._api_url = api_url
        self.timeout_seconds = timeout_seconds

    @property
    def available(self) -> bool:
        return bool(self._api_token)

    def transcribe(self, audio: bytes, filename: str = "feedback.wav", mime_type: str = "audio/wav") -> str:
        if not self.available:
            raise TranscriptionError("Lelapa API token not configured")

        try:
            response = requests.post(
                self._api_url,
                headers={"X-CLIENT-TOKEN": self._api_token},
                files={"file": (filename, audio, mime_type)},
                timeout=self.timeout_seconds,
            )
            response.raise_for_status()
            data = response.json()
        except requests.Timeout:
            raise TranscriptionError("Lelapa request timed out")
        except requests.RequestException as e:
            raise TranscriptionError(f"Lelapa request failed: {e}")
        except ValueError as e:
            raise TranscriptionError(f"Lelapa returned invalid JSON: {e}")

        text = data.get("transcription_text") or data.get("transcription") or ""
        return str(text).strip()


class LocalRecognizerProvider(SpeechProvider):
    """
    Wraps an in-process recognition engine.

    The engine is any callable taking raw audio bytes and returning text.
    """

    name = "local"

    def __init__(self, recognizer: Optional[Callable[[bytes], str]] = None, timeout_seconds: float = 20, name: str = "local"):
        self._recognizer = recognizer
        self.timeout_seconds = timeout_seconds
        self.name = name

    @property
    def available(self) -> bool:
        return self._recognizer is not None

    def transcribe(self, audio: bytes, filename: str = "feedback.wav", mime_type: str = "audio/wav") -> str:
        if self._recognizer is None:
            raise TranscriptionError("No local recognizer configured")
        try:
            return str(self._recognizer(audio) or "").strip()
        except Exception as e:
            raise TranscriptionError(f"Local recognizer failed: {e}")


def build_providers(settings: SpeechSettings, recognizer: Optional[Callable[[bytes], str]] = None) -> List[SpeechProvider]:
    """Providers in priority order: Whisper, Lelapa, then the local engine."""
    return [
        WhisperProvider(
            api_key=settings.whisper_api_key,
            api_url=settings.whisper_api_url,
            model=settings.whisper_model,
            timeout_seconds=settings.whisper_timeout_seconds,
        ),
        LelapaProvider(
            api_token=settings.lelapa_api_token,
            api_url=settings.lelapa_api_url,
            timeout_seconds=settings.lelapa_timeout_seconds,
        ),
        LocalRecognizerProvider(recognizer),
    ]
