from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Protocol

from .models import Frame
from .session import AnalysisSession, SessionReport

logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """Decoded frame stream; read() returns None at end of stream."""

    duration_s: float

    def read(self) -> Frame | None: ...


class IterableFrameSource:
    """FrameSource over any iterable of frames, e.g. synthetic sequences."""

    def __init__(self, frames: Iterable[Frame], duration_s: float = 0.0) -> None:
        self._frames: Iterator[Frame] = iter(frames)
        self.duration_s = duration_s

    def read(self) -> Frame | None:
        return next(self._frames, None)


class AnalysisRunner:
    """Frame-synchronous analysis task: one frame per tick, then it yields.

    Every start/pause/stop/reset bumps the generation, so a tick scheduled for
    an earlier generation becomes a no-op instead of touching torn-down state.
    """

    def __init__(self, session: AnalysisSession, source: FrameSource) -> None:
        self.session = session
        self.source = source
        self.generation = 0
        self.status = "idle"
        self.error: str | None = None

    @property
    def report(self) -> SessionReport | None:
        return self.session.report

    def start(self) -> int:
        if self.status == "running":
            return self.generation
        if self.status in ("stopped", "completed", "error"):
            raise RuntimeError(f"runner is {self.status}; reset before starting again")
        self.generation += 1
        self.status = "running"
        logger.info("analysis started (generation %d)", self.generation)
        return self.generation

    def tick(self, token: int) -> bool:
        """Process one frame; returns True when the caller should schedule another tick."""

        if token != self.generation or self.status != "running":
            return False

        try:
            frame = self.source.read()
            if frame is None:
                self.session.finalize(self.source.duration_s)
                self.status = "completed"
                self.generation += 1
                return False
            self.session.process_frame(frame)
        except Exception as error:
            logger.exception("frame processing failed at frame %d", self.session.frame_count)
            self.error = f"{type(error).__name__}: {error}"
            self.status = "error"
            self.generation += 1
            return False
        return True

    def pause(self) -> None:
        """Source paused: stop silently, keep state, allow start() to resume."""

        if self.status == "running":
            self.generation += 1
            self.status = "paused"

    def stop(self) -> None:
        """User stop: cancel any pending tick and freeze the accumulators."""

        self.generation += 1
        if self.status in ("running", "paused", "idle"):
            self.status = "stopped"

    def reset(self, source: FrameSource | None = None) -> None:
        self.generation += 1
        if source is not None:
            self.source = source
        self.session.reset()
        self.status = "idle"
        self.error = None

    def run(self) -> str:
        """Drive ticks back to back until the task stops rescheduling itself."""

        token = self.start()
        while self.tick(token):
            pass
        return self.status
