"""
Transcription Racer - Concurrent Speech-to-Text with Graceful Degradation
=========================================================================

ARCHITECTURAL DECISION:
- Every configured provider runs at once on a thread pool
- Each provider has its own deadline; errors, timeouts and too-short
  transcripts all count as "no result"
- Which result wins is decided by select_transcript(), a pure function of
  the settled outcomes and the fixed priority order, never arrival order

The racer returns as soon as the winner is certain: the highest-priority
usable transcript whose higher-priority rivals have all settled. It never
waits past the longest provider timeout. Results that arrive after their
deadline are discarded.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .archive import LocalAudioArchive
from .providers import SpeechProvider
from ...domain.models import TranscriptionFailure, TranscriptionFailureReason

logger = logging.getLogger(__name__)

DEFAULT_MIN_TRANSCRIPT_LENGTH = 10


@dataclass
class ProviderOutcome:
    """Settled result of one provider attempt."""
    provider: str
    text: Optional[str] = None
    error: Optional[str] = None
    finished_at: float = 0.0

    def usable(self, min_length: int) -> bool:
        return self.error is None and self.text is not None and len(self.text.strip()) >= min_length


def select_transcript(
    priority: Sequence[str],
    settled: Mapping[str, ProviderOutcome],
    min_length: int = DEFAULT_MIN_TRANSCRIPT_LENGTH,
) -> Tuple[bool, Optional[ProviderOutcome]]:
    """
    Decide the winner from what has settled so far.

    Returns (decided, outcome). Walks providers in priority order: a settled
    usable outcome wins, a settled unusable one is skipped, an unsettled one
    means the decision has to wait. (True, None) means nothing was usable.
    """
    for name in priority:
        outcome = settled.get(name)
        if outcome is None:
            return False, None
        if outcome.usable(min_length):
            return True, outcome
    return True, None


class TranscriptionRacer:
    """
    Races speech providers and returns the best transcript.

    USAGE:
        racer = TranscriptionRacer(build_providers(settings.speech))
        result = racer.transcribe(audio_bytes)
        if isinstance(result, TranscriptionFailure):
            ask_user_to_retry_or_type(result.message)
    """

    def __init__(
        self,
        providers: Sequence[SpeechProvider],
        min_length: int = DEFAULT_MIN_TRANSCRIPT_LENGTH,
        archive: Optional[LocalAudioArchive] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        names = [p.name for p in providers]
        if len(set(names)) != len(names):
            raise ValueError(f"Provider names must be unique: {names}")
        self._providers = list(providers)
        self._min_length = min_length
        self._archive = archive
        self._clock = clock
        self._reported_unconfigured = False

    @property
    def available_providers(self) -> List[SpeechProvider]:
        return [p for p in self._providers if p.available]

    @property
    def available(self) -> bool:
        return bool(self.available_providers)

    def transcribe(
        self,
        audio: bytes,
        filename: str = "feedback.wav",
        mime_type: str = "audio/wav",
        archive_name: Optional[str] = None,
    ) -> Union[str, TranscriptionFailure]:
        """
        Transcribe ``audio`` with every available provider at once.

        Returns:
            The winning transcript, or a TranscriptionFailure.
        """
        providers = self.available_providers
        if not providers:
            if not self._reported_unconfigured:
                logger.error("No speech-to-text provider is configured")
                self._reported_unconfigured = True
            return TranscriptionFailure(reason=TranscriptionFailureReason.NOT_CONFIGURED)

        executor = ThreadPoolExecutor(max_workers=len(providers) + 1, thread_name_prefix="stt")
        try:
            if self._archive is not None and archive_name:
                archived = executor.submit(self._archive.save, audio, archive_name)
                archived.add_done_callback(_log_archive_failure)

            settled = self._race(executor, providers, audio, filename, mime_type)
        finally:
            # Slower providers are abandoned; their late results are never read
            executor.shutdown(wait=False, cancel_futures=True)

        priority = [p.name for p in providers]
        _, winner = select_transcript(priority, settled, self._min_length)
        if winner is not None:
            logger.info(f"Transcript selected from '{winner.provider}' ({len(winner.text)} chars)")
            return winner.text.strip()

        errors = {name: outcome.error or "transcript too short" for name, outcome in settled.items()}
        logger.warning(f"No usable transcript from any provider: {errors}")
        return TranscriptionFailure(reason=TranscriptionFailureReason.NO_USABLE_TRANSCRIPT, errors=errors)

    def _race(
        self,
        executor: ThreadPoolExecutor,
        providers: List[SpeechProvider],
        audio: bytes,
        filename: str,
        mime_type: str,
    ) -> Dict[str, ProviderOutcome]:
        start = self._clock()
        priority = [p.name for p in providers]
        deadlines = {p.name: start + p.timeout_seconds for p in providers}
        pending: Dict[Future, SpeechProvider] = {
            executor.submit(self._attempt, p, audio, filename, mime_type): p for p in providers
        }
        settled: Dict[str, ProviderOutcome] = {}

        while True:
            decided, _ = select_transcript(priority, settled, self._min_length)
            if decided or not pending:
                return settled

            now = self._clock()
            for future, provider in list(pending.items()):
                if not future.done() and now >= deadlines[provider.name]:
                    logger.warning(f"Provider '{provider.name}' timed out after {provider.timeout_seconds}s")
                    settled[provider.name] = ProviderOutcome(provider.name, error="timed out", finished_at=now)
                    del pending[future]
            if not pending:
                continue

            remaining = max(0.0, min(deadlines[p.name] for p in pending.values()) - now)
            done, _ = wait(list(pending), timeout=remaining, return_when=FIRST_COMPLETED)
            for future in done:
                provider = pending.pop(future)
                outcome = future.result()
                if outcome.finished_at > deadlines[provider.name]:
                    outcome = ProviderOutcome(provider.name, error="timed out", finished_at=outcome.finished_at)
                elif outcome.error is None and not outcome.usable(self._min_length):
                    logger.debug(f"Provider '{provider.name}' returned a transcript that is too short")
                settled[provider.name] = outcome

    def _attempt(self, provider: SpeechProvider, audio: bytes, filename: str, mime_type: str) -> ProviderOutcome:
        # Provider failures are opaque to the racer
        try:
            text = provider.transcribe(audio, filename=filename, mime_type=mime_type)
            return ProviderOutcome(provider.name, text=text, finished_at=self._clock())
        except Exception as e:
            logger.warning(f"Provider '{provider.name}' failed: {e}")
            return ProviderOutcome(provider.name, error=str(e) or e.__class__.__name__, finished_at=self._clock())


def _log_archive_failure(future: Future) -> None:
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.warning(f"Audio archive failed: {error}")
