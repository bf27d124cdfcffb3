from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence

from .models import WallPointSlice

MAX_SLICES = 120

PointBuffer = list[WallPointSlice]


class PointCloudStack:
    """Bounded FIFO of per-frame wall-point slices; the oldest slice drops first."""

    def __init__(self, max_slices: int = MAX_SLICES) -> None:
        if max_slices <= 0:
            raise ValueError("max_slices must be positive")
        self.max_slices = max_slices
        self._slices: deque[WallPointSlice] = deque(maxlen=max_slices)

    def __len__(self) -> int:
        return len(self._slices)

    def push(self, frame_index: int, points: Iterable[tuple[float, float]]) -> WallPointSlice:
        wall_slice = WallPointSlice(
            frame_index=frame_index,
            points=tuple((float(x), float(y)) for x, y in points),
        )
        self._slices.append(wall_slice)
        return wall_slice

    def slices(self) -> list[WallPointSlice]:
        return list(self._slices)

    def window(self, size: int) -> list[WallPointSlice]:
        """Most recent `size` slices, oldest first."""

        if size <= 0:
            return []
        items = list(self._slices)
        return items[-size:]

    def point_count(self) -> int:
        return sum(len(wall_slice.points) for wall_slice in self._slices)

    def replace_points(self, frame_index: int, points: Sequence[tuple[float, float]]) -> None:
        for position, wall_slice in enumerate(self._slices):
            if wall_slice.frame_index == frame_index:
                self._slices[position] = WallPointSlice(
                    frame_index=frame_index, points=tuple(points)
                )
                return
        raise KeyError(frame_index)

    def snapshot(self) -> PointBuffer:
        """Deep copy of the point buffer; slices are immutable so copying the list suffices."""

        return list(self._slices)

    def restore(self, buffer: Sequence[WallPointSlice]) -> None:
        self._slices = deque(buffer, maxlen=self.max_slices)

    def clear(self) -> None:
        self._slices.clear()
