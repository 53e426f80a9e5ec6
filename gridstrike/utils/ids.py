"""Injectable id sources, so matches stay reproducible under test."""

import itertools
import random
import string
from typing import Iterator, Optional


class IDGenerator:
    """Sequential unit ids (``launcher_1``, ``defense_2`` ...), unique within one match."""

    def __init__(self, start: int = 1):
        self._counter: Iterator[int] = itertools.count(start)

    def next_id(self, prefix: str = "unit") -> str:
        return f"{prefix}_{next(self._counter)}"


class RoomIdGenerator:
    """Six character upper-case room codes."""

    ALPHABET = string.ascii_uppercase + string.digits

    def __init__(self, length: int = 6, seed: Optional[int] = None):
        self.length = length
        self._rng = random.Random(seed)

    def __call__(self) -> str:
        return "".join(self._rng.choice(self.ALPHABET) for _ in range(self.length))


class SequentialRoomIds:
    def __init__(self, prefix: str = "ROOM", start: int = 1):
        self.prefix = prefix
        self._counter = itertools.count(start)

    def __call__(self) -> str:
        return f"{self.prefix}{next(self._counter)}"
