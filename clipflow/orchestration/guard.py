from __future__ import annotations

from typing import Dict, Optional


class SegmentToken:
    """
    Exclusive claim on one segment index.

    Obtained from InFlightGuard.acquire() before the first await of an
    attempt and released exactly once, normally via ``with token:``.
    """

    __slots__ = ("guard", "index", "_released")

    def __init__(self, guard: "InFlightGuard", index: int):
        self.guard = guard
        self.index = index
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self.guard._release(self)

    def __enter__(self) -> "SegmentToken":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"SegmentToken(index={self.index}, {state})"


class InFlightGuard:
    """
    Tracks which segment indices have an attempt in flight.

    acquire() is synchronous, so on a single event loop check-and-set cannot
    interleave with another coroutine. Releasing a token only frees the index
    if that token still owns it, so a token orphaned by clear() cannot free
    an index claimed afterwards.
    """

    def __init__(self):
        self._owners: Dict[int, SegmentToken] = {}

    def acquire(self, index: int) -> Optional[SegmentToken]:
        if index in self._owners:
            return None
        token = SegmentToken(self, index)
        self._owners[index] = token
        return token

    def _release(self, token: SegmentToken) -> None:
        if self._owners.get(token.index) is token:
            del self._owners[token.index]

    def is_in_flight(self, index: int) -> bool:
        return index in self._owners

    def __contains__(self, index: int) -> bool:
        return index in self._owners

    def __len__(self) -> int:
        return len(self._owners)

    def in_flight(self) -> frozenset:
        return frozenset(self._owners)

    def clear(self) -> None:
        self._owners.clear()
