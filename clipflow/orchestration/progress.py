"""
Progress reporting for a generation run.

estimate_progress() is pure: it maps the segment list plus a tick count to a
0-100 value and a label. LiveProgress owns the tick count and advances it
while some segment is generating.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from clipflow.orchestration.status import Completed, Failed, Generating
from clipflow.sessions.models import Segment

# Animated share of the in-flight clip: percent of one clip per tick, and
# the most of one clip it may ever show.
TICK_PERCENT = 2.0
CLIP_CAP_PERCENT = 90.0
MAX_INCOMPLETE_PROGRESS = 99.0


@dataclass(frozen=True)
class Progress:
    value: float
    label: str


def _clips(n: int) -> str:
    return "clip" if n == 1 else "clips"


def estimate_progress(segments: Sequence[Segment], tick: int = 0) -> Progress:
    total = len(segments)
    if total == 0:
        return Progress(0.0, "Preparing...")

    completed = sum(1 for s in segments if isinstance(s.status, Completed))
    failed = sum(1 for s in segments if isinstance(s.status, Failed))
    generating = next((s.index for s in segments if isinstance(s.status, Generating)), None)

    if completed == total:
        return Progress(100.0, f"All {total} {_clips(total)} completed")
    if completed + failed == total:
        return Progress(100.0, f"{completed} of {total} {_clips(total)} completed")

    base = completed / total * 100
    if generating is None:
        return Progress(base, f"{completed} of {total} {_clips(total)} completed")

    clip_share = min(max(tick, 0) * TICK_PERCENT, CLIP_CAP_PERCENT) / 100 * (100 / total)
    value = min(base + clip_share, MAX_INCOMPLETE_PROGRESS)
    return Progress(value, f"Generating clip {generating + 1} of {total}...")


class LiveProgress:
    """
    Tick source for the animated part of the progress value.

    update() is called once per interval: it advances the tick while a
    segment is generating and resets it to 0 otherwise. run() calls it on a
    timer until stop() is called.
    """

    def __init__(self, segments: Callable[[], Sequence[Segment]], interval_sec: float = 1.0):
        if interval_sec <= 0 or interval_sec > 1.0:
            raise ValueError("interval_sec must be in (0, 1]")
        self._segments = segments
        self.interval_sec = interval_sec
        self.tick = 0
        self._task: Optional[asyncio.Task] = None

    def _any_generating(self) -> bool:
        return any(isinstance(s.status, Generating) for s in self._segments())

    def update(self) -> int:
        if self._any_generating():
            self.tick += 1
        else:
            self.tick = 0
        return self.tick

    def snapshot(self) -> Progress:
        segments = list(self._segments())
        tick = self.tick if any(isinstance(s.status, Generating) for s in segments) else 0
        return estimate_progress(segments, tick)

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_sec)
            self.update()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
