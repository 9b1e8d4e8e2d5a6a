"""Best-effort local archive of submitted recordings."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class LocalAudioArchive:
    """Writes each recording to ``directory``. The racer runs this fire-and-forget."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def save(self, audio: bytes, filename: str) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / Path(filename).name
        path.write_bytes(audio)
        logger.info(f"Archived recording: {path}")
        return path
