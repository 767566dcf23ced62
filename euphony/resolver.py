"""
Maps songs onto playable audio resources.

Every song resolves deterministically into a small fixed pool of sample
audio files, keyed by the digits of its id, so the same song always plays
the same audio.
"""

import re
from typing import Sequence

from .models import Song


class ResourceResolver:
    """Pure mapping from a song to a playable resource URI."""

    def __init__(self, pool: Sequence[str]):
        if not pool:
            raise ValueError("Resource pool must not be empty")
        self.pool = list(pool)

    def resolve(self, song: Song) -> str:
        digits = re.sub(r"\D", "", song.id)
        number = int(digits) if digits else 0
        return self.pool[number % len(self.pool)]
