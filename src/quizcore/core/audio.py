"""Audio collaborator contract. Playback itself lives outside the engine."""

from __future__ import annotations

from typing import List, Protocol, runtime_checkable

import structlog

LOGGER = structlog.get_logger(__name__)


@runtime_checkable
class AudioPlayer(Protocol):
    def play(self, sound_id: str) -> None:
        """Fire-and-forget playback request."""


class SilentAudio:
    """Records requested sounds instead of playing them."""

    def __init__(self) -> None:
        self.played: List[str] = []

    def play(self, sound_id: str) -> None:
        self.played.append(sound_id)
        LOGGER.debug("audio.play", sound_id=sound_id)
