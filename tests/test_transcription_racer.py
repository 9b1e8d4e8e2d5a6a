import time

import pytest
import requests

from feedback_rewards.domain.models import TranscriptionFailure, TranscriptionFailureReason
from feedback_rewards.infrastructure.config import SpeechSettings
from feedback_rewards.infrastructure.speech import (
    LelapaProvider,
    LocalAudioArchive,
    LocalRecognizerProvider,
    ProviderOutcome,
    SpeechProvider,
    TranscriptionError,
    TranscriptionRacer,
    WhisperProvider,
    build_providers,
    select_transcript,
)
from feedback_rewards.infrastructure.speech import providers as speech_providers

LONG_TEXT = "The lamb was tender and the staff were kind"


class FakeProvider(SpeechProvider):
    def __init__(self, name, text=None, delay=0.0, error=None, timeout_seconds=2.0, available=True):
        self.name = name
        self.timeout_seconds = timeout_seconds
        self._text = text
        self._delay = delay
        self._error = error
        self._available = available
        self.calls = 0

    @property
    def available(self) -> bool:
        return self._available

    def transcribe(self, audio, filename="feedback.wav", mime_type="audio/wav") -> str:
        self.calls += 1
        time.sleep(self._delay)
        if self._error is not None:
            raise self._error
        return self._text


# ── select_transcript ──────────────────────────────────────────────

def test_select_waits_for_higher_priority() -> None:
    settled = {"b": ProviderOutcome("b", text=LONG_TEXT)}
    assert select_transcript(["a", "b"], settled) == (False, None)


def test_select_skips_unusable_outcomes() -> None:
    settled = {
        "a": ProviderOutcome("a", text="ok"),
        "b": ProviderOutcome("b", text=LONG_TEXT),
    }
    decided, outcome = select_transcript(["a", "b"], settled)
    assert decided
    assert outcome.provider == "b"


def test_select_ignores_arrival_order() -> None:
    settled = {
        "b": ProviderOutcome("b", text=LONG_TEXT, finished_at=1.0),
        "a": ProviderOutcome("a", text=LONG_TEXT, finished_at=5.0),
    }
    assert select_transcript(["a", "b"], settled)[1].provider == "a"


def test_select_reports_nothing_usable() -> None:
    settled = {
        "a": ProviderOutcome("a", error="timed out"),
        "b": ProviderOutcome("b", text="   "),
    }
    assert select_transcript(["a", "b"], settled) == (True, None)


# ── TranscriptionRacer ─────────────────────────────────────────────

def test_priority_beats_arrival_order() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", text="Primary transcript of the visit", delay=0.2),
        FakeProvider("b", text="Secondary transcript of the visit", delay=0.0),
    ])
    assert racer.transcribe(b"audio") == "Primary transcript of the visit"


def test_short_primary_falls_through_to_secondary() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", text="ok", delay=0.05),
        FakeProvider("b", text=LONG_TEXT, delay=0.2),
    ])
    assert racer.transcribe(b"audio") == LONG_TEXT


def test_returns_without_waiting_for_slower_providers() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", text=LONG_TEXT, delay=0.05),
        FakeProvider("b", text=LONG_TEXT, delay=1.5, timeout_seconds=3.0),
    ])

    started = time.monotonic()
    assert racer.transcribe(b"audio") == LONG_TEXT
    assert time.monotonic() - started < 1.0


def test_provider_timeout_is_enforced() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", text="Too late to matter anyway", delay=1.5, timeout_seconds=0.2),
        FakeProvider("b", text=LONG_TEXT, delay=0.05),
    ])

    started = time.monotonic()
    assert racer.transcribe(b"audio") == LONG_TEXT
    assert time.monotonic() - started < 1.0


def test_failures_of_any_kind_fall_through() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", error=TranscriptionError("quota exceeded")),
        FakeProvider("b", error=RuntimeError("engine crashed")),
        FakeProvider("c", text=f"  {LONG_TEXT}  "),
    ])
    assert racer.transcribe(b"audio") == LONG_TEXT


def test_no_usable_transcript() -> None:
    racer = TranscriptionRacer([
        FakeProvider("a", error=TranscriptionError("quota exceeded")),
        FakeProvider("b", text="hi"),
        FakeProvider("c", text=LONG_TEXT, delay=1.0, timeout_seconds=0.1),
    ])

    result = racer.transcribe(b"audio")

    assert isinstance(result, TranscriptionFailure)
    assert result.reason is TranscriptionFailureReason.NO_USABLE_TRANSCRIPT
    assert result.errors == {
        "a": "quota exceeded",
        "b": "transcript too short",
        "c": "timed out",
    }
    assert result.message


def test_not_configured_when_no_provider_available() -> None:
    unavailable = FakeProvider("a", text=LONG_TEXT, available=False)
    racer = TranscriptionRacer([unavailable])

    result = racer.transcribe(b"audio")

    assert isinstance(result, TranscriptionFailure)
    assert result.reason is TranscriptionFailureReason.NOT_CONFIGURED
    assert unavailable.calls == 0
    assert not racer.available


def test_unavailable_providers_are_skipped() -> None:
    unavailable = FakeProvider("a", text="Should never be used here", available=False)
    racer = TranscriptionRacer([unavailable, FakeProvider("b", text=LONG_TEXT)])

    assert racer.transcribe(b"audio") == LONG_TEXT
    assert unavailable.calls == 0


def test_duplicate_provider_names_are_rejected() -> None:
    with pytest.raises(ValueError):
        TranscriptionRacer([FakeProvider("a"), FakeProvider("a")])


def test_custom_minimum_length() -> None:
    racer = TranscriptionRacer([FakeProvider("a", text="Tasty")], min_length=3)
    assert racer.transcribe(b"audio") == "Tasty"


def _wait_for(path, timeout=2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists():
            return True
        time.sleep(0.01)
    return False


def test_recording_is_archived(tmp_path) -> None:
    racer = TranscriptionRacer(
        [FakeProvider("a", text=LONG_TEXT)],
        archive=LocalAudioArchive(tmp_path / "audio"),
    )

    assert racer.transcribe(b"RIFF-data", archive_name="review_r1_u1.wav") == LONG_TEXT
    assert _wait_for(tmp_path / "audio" / "review_r1_u1.wav")
    assert (tmp_path / "audio" / "review_r1_u1.wav").read_bytes() == b"RIFF-data"


def test_archive_failure_does_not_affect_transcript(tmp_path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("occupied")
    racer = TranscriptionRacer([FakeProvider("a", text=LONG_TEXT)], archive=LocalAudioArchive(blocker))

    assert racer.transcribe(b"audio", archive_name="review.wav") == LONG_TEXT


# ── HTTP providers ─────────────────────────────────────────────────

class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def json(self):
        return self._payload


def test_whisper_provider_posts_multipart(monkeypatch) -> None:
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return FakeResponse({"text": f" {LONG_TEXT} "})

    monkeypatch.setattr(speech_providers.requests, "post", fake_post)
    provider = WhisperProvider(api_key="sk-test", api_url="https://stt.test/v1/audio/transcriptions")

    assert provider.transcribe(b"audio", filename="clip.webm", mime_type="audio/webm") == LONG_TEXT

    url, kwargs = calls[0]
    assert url == "https://stt.test/v1/audio/transcriptions"
    assert kwargs["headers"] == {"Authorization": "Bearer sk-test"}
    assert kwargs["files"] == {"file": ("clip.webm", b"audio", "audio/webm")}
    assert kwargs["data"]["model"] == "whisper-1"
    assert kwargs["timeout"] == 30


def test_whisper_provider_wraps_http_errors(monkeypatch) -> None:
    monkeypatch.setattr(speech_providers.requests, "post", lambda url, **kwargs: FakeResponse({}, 401))

    with pytest.raises(TranscriptionError):
        WhisperProvider(api_key="sk-test").transcribe(b"audio")


def test_lelapa_provider_reads_transcription_text(monkeypatch) -> None:
    calls = []

    def fake_post(url, **kwargs):
        calls.append(kwargs)
        return FakeResponse({"transcription_text": LONG_TEXT})

    monkeypatch.setattr(speech_providers.requests, "post", fake_post)

    assert LelapaProvider(api_token="token").transcribe(b"audio") == LONG_TEXT
    assert calls[0]["headers"] == {"X-CLIENT-TOKEN": "token"}


def test_unconfigured_provider_raises() -> None:
    with pytest.raises(TranscriptionError):
        LelapaProvider(api_token="").transcribe(b"audio")
    with pytest.raises(TranscriptionError):
        LocalRecognizerProvider().transcribe(b"audio")


def test_build_providers_priority_and_availability() -> None:
    settings = SpeechSettings(whisper_api_key="sk-test", lelapa_api_token="")

    providers = build_providers(settings, recognizer=lambda audio: LONG_TEXT)

    assert [p.name for p in providers] == ["whisper", "lelapa", "local"]
    assert [p.name for p in providers if p.available] == ["whisper", "local"]
