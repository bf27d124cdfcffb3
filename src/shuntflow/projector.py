from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field

import numpy as np
from scipy.spatial import cKDTree

from .models import WallPointSlice
from .point_cloud import PointBuffer, PointCloudStack

logger = logging.getLogger(__name__)

CAMERA_DISTANCE = 400.0
ROTATION_PER_PIXEL = 0.01
ZOOM_STEP = 1.1
MIN_ZOOM = 0.2
MAX_ZOOM = 5.0
INLINE_SCALE = 0.5
UNDO_DEPTH = 5

ENLARGED_WINDOW = 300
INLINE_WINDOW = 100
ENLARGED_DEPTH_STEP = 3.0
INLINE_DEPTH_STEP = 2.0

INTERACTION_MODES = ("rotate", "move", "delete")


@dataclass
class ViewState:
    """Rotation, pan, zoom and filter settings of the pseudo-3D view."""

    rot_x: float = 0.5
    rot_y: float = 0.5
    pan_x: float = 0.0
    pan_y: float = 0.0
    zoom: float = 1.0
    noise_filter_level: int = 1
    mode: str = "rotate"


@dataclass(frozen=True)
class Viewport:
    width: float
    height: float
    enlarged: bool = True

    @property
    def window_size(self) -> int:
        return ENLARGED_WINDOW if self.enlarged else INLINE_WINDOW

    @property
    def depth_step(self) -> float:
        return ENLARGED_DEPTH_STEP if self.enlarged else INLINE_DEPTH_STEP


@dataclass(frozen=True)
class ProjectedPoint:
    x: float
    y: float
    z: float
    size: float


@dataclass(frozen=True)
class ProjectedSlice:
    frame_index: int
    alpha: float
    points: tuple[ProjectedPoint, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SelectionBox:
    start_x: float
    start_y: float
    current_x: float
    current_y: float

    def bounds(self) -> tuple[float, float, float, float]:
        return (
            min(self.start_x, self.current_x),
            min(self.start_y, self.current_y),
            max(self.start_x, self.current_x),
            max(self.start_y, self.current_y),
        )


def rotate_point(
    x: float, y: float, z: float, ax: float, ay: float
) -> tuple[float, float, float]:
    """Pitch about the x axis by `ax`, then yaw about the y axis by `ay`."""

    y1 = y * math.cos(ax) - z * math.sin(ax)
    z1 = y * math.sin(ax) + z * math.cos(ax)
    x2 = x * math.cos(ay) + z1 * math.sin(ay)
    z2 = -x * math.sin(ay) + z1 * math.cos(ay)
    return x2, y1, z2


def _project_arrays(
    points: np.ndarray,
    z: float,
    view: ViewState,
    center_x: float,
    center_y: float,
    scale: float,
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Vectorized rotate_point + perspective; returns (px, py, z_rot, perspective, valid)."""

    x = points[:, 0]
    y = points[:, 1]
    cos_x, sin_x = math.cos(view.rot_x), math.sin(view.rot_x)
    cos_y, sin_y = math.cos(view.rot_y), math.sin(view.rot_y)

    y1 = y * cos_x - z * sin_x
    z1 = y * sin_x + z * cos_x
    x2 = x * cos_y + z1 * sin_y
    z2 = -x * sin_y + z1 * cos_y

    # Points at or behind the camera plane have no usable projection.
    valid = z2 < CAMERA_DISTANCE
    depth = np.where(valid, CAMERA_DISTANCE - z2, 1.0)
    perspective = CAMERA_DISTANCE / depth
    px = center_x + x2 * scale * perspective
    py = center_y + y1 * scale * perspective
    return px, py, z2, perspective, valid


def _as_array(wall_slice: WallPointSlice) -> np.ndarray:
    if not wall_slice.points:
        return np.empty((0, 2), dtype=np.float64)
    return np.asarray(wall_slice.points, dtype=np.float64)


def _build_tree(points: np.ndarray) -> cKDTree | None:
    return cKDTree(points) if len(points) else None


def _has_neighbor(points: np.ndarray, tree: cKDTree | None, radius: float) -> np.ndarray:
    """True where the nearest point of `tree` lies strictly within `radius` on both axes."""

    if len(points) == 0 or tree is None:
        return np.zeros(len(points), dtype=bool)
    distances, _ = tree.query(points, k=1, p=np.inf, distance_upper_bound=radius)
    return distances < radius


def noise_filter_mask(
    window: list[np.ndarray],
    index: int,
    level: int,
    trees: list[cKDTree | None] | None = None,
) -> np.ndarray:
    """Keep points that have a counterpart in an adjacent slice within level*3 px.

    `trees` holds one prebuilt index per slice of `window`; it is built here when omitted.
    """

    points = window[index]
    if level <= 0:
        return np.ones(len(points), dtype=bool)

    radius = level * 3.0
    keep = np.zeros(len(points), dtype=bool)
    for other in (index - 1, index + 1):
        if not 0 <= other < len(window):
            continue
        tree = trees[other] if trees is not None else _build_tree(window[other])
        keep |= _has_neighbor(points, tree, radius)
    return keep


class Projector:
    """Interactive rotate/pan/zoom view over a PointCloudStack, with deletion and undo.

    The projector and the stack are owned by the same single-threaded task as
    frame processing; nothing here locks.
    """

    def __init__(self, view: ViewState | None = None, undo_depth: int = UNDO_DEPTH) -> None:
        self.view = view or ViewState()
        self.history: deque[PointBuffer] = deque(maxlen=undo_depth)
        self.selection: SelectionBox | None = None

    # -- view state -------------------------------------------------------

    def set_mode(self, mode: str) -> None:
        if mode not in INTERACTION_MODES:
            raise ValueError(f"unknown interaction mode: {mode}")
        self.view.mode = mode
        self.selection = None

    def set_noise_filter(self, level: int) -> None:
        if level < 0:
            raise ValueError("noise filter level must be >= 0")
        self.view.noise_filter_level = level

    def drag(self, dx: float, dy: float) -> None:
        if self.view.mode == "rotate":
            self.view.rot_x += dy * ROTATION_PER_PIXEL
            self.view.rot_y += dx * ROTATION_PER_PIXEL
        elif self.view.mode == "move":
            self.view.pan_x += dx
            self.view.pan_y += dy

    def zoom_in(self) -> float:
        self.view.zoom = min(self.view.zoom * ZOOM_STEP, MAX_ZOOM)
        return self.view.zoom

    def zoom_out(self) -> float:
        self.view.zoom = max(self.view.zoom / ZOOM_STEP, MIN_ZOOM)
        return self.view.zoom

    def reset_view(self) -> None:
        self.view = ViewState()
        self.selection = None
        self.history.clear()

    def _frame_transform(self, viewport: Viewport) -> tuple[float, float, float]:
        if viewport.enlarged:
            return (
                viewport.width / 2.0 + self.view.pan_x,
                viewport.height / 2.0 + self.view.pan_y,
                self.view.zoom,
            )
        return viewport.width / 2.0, viewport.height / 2.0, INLINE_SCALE

    # -- rendering --------------------------------------------------------

    def project(self, stack: PointCloudStack, viewport: Viewport) -> list[ProjectedSlice]:
        """Project the recent window of slices to screen space, oldest slice first."""

        window = stack.window(viewport.window_size)
        if not window:
            return []

        center_x, center_y, scale = self._frame_transform(viewport)
        arrays = [_as_array(wall_slice) for wall_slice in window]
        count = len(window)
        trees = (
            [_build_tree(points) for points in arrays]
            if self.view.noise_filter_level > 0
            else None
        )
        projected: list[ProjectedSlice] = []
        for index, wall_slice in enumerate(window):
            alpha = 0.2 + (index / count) * 0.8
            points = arrays[index]
            if points.size == 0:
                projected.append(ProjectedSlice(frame_index=wall_slice.frame_index, alpha=alpha))
                continue

            keep = noise_filter_mask(arrays, index, self.view.noise_filter_level, trees)
            z = (index - count / 2.0) * viewport.depth_step
            px, py, z_rot, perspective, valid = _project_arrays(
                points, z, self.view, center_x, center_y, scale
            )
            keep &= valid
            if viewport.enlarged:
                sizes = 1.5 * perspective
            else:
                sizes = np.full(len(points), 1.2)
            projected.append(
                ProjectedSlice(
                    frame_index=wall_slice.frame_index,
                    alpha=alpha,
                    points=tuple(
                        ProjectedPoint(
                            x=float(px[i]), y=float(py[i]), z=float(z_rot[i]), size=float(sizes[i])
                        )
                        for i in np.flatnonzero(keep)
                    ),
                )
            )
        return projected

    # -- selection and editing -------------------------------------------

    def begin_selection(self, x: float, y: float) -> bool:
        if self.view.mode != "delete":
            return False
        self.selection = SelectionBox(x, y, x, y)
        return True

    def update_selection(self, x: float, y: float) -> None:
        if self.selection is None:
            return
        self.selection = SelectionBox(self.selection.start_x, self.selection.start_y, x, y)

    def end_selection(self, stack: PointCloudStack, viewport: Viewport) -> int:
        if self.selection is None:
            return 0
        box = self.selection
        self.selection = None
        return self.delete_in_rectangle(stack, box.bounds(), viewport)

    def delete_in_rectangle(
        self,
        stack: PointCloudStack,
        rectangle: tuple[float, float, float, float],
        viewport: Viewport,
    ) -> int:
        """Remove every point whose current projection falls inside `rectangle`.

        Works on the underlying slices of the enlarged window, not only on the
        points the noise filter lets through. Returns the number of removed points.
        """

        if self.view.mode != "delete" or not viewport.enlarged:
            return 0

        min_x = min(rectangle[0], rectangle[2])
        max_x = max(rectangle[0], rectangle[2])
        min_y = min(rectangle[1], rectangle[3])
        max_y = max(rectangle[1], rectangle[3])

        buffer = stack.snapshot()
        self.history.append(stack.snapshot())

        window_size = min(ENLARGED_WINDOW, len(buffer))
        window_start = len(buffer) - window_size
        center_x, center_y, scale = self._frame_transform(viewport)

        removed = 0
        edited: PointBuffer = list(buffer[:window_start])
        for index, wall_slice in enumerate(buffer[window_start:]):
            points = _as_array(wall_slice)
            if points.size == 0:
                edited.append(wall_slice)
                continue
            z = (index - window_size / 2.0) * ENLARGED_DEPTH_STEP
            px, py, _, _, valid = _project_arrays(
                points, z, self.view, center_x, center_y, scale
            )
            inside = valid & (px >= min_x) & (px <= max_x) & (py >= min_y) & (py <= max_y)
            hits = int(np.count_nonzero(inside))
            if hits == 0:
                edited.append(wall_slice)
                continue
            removed += hits
            edited.append(
                WallPointSlice(
                    frame_index=wall_slice.frame_index,
                    points=tuple(
                        point
                        for point, hit in zip(wall_slice.points, inside, strict=True)
                        if not hit
                    ),
                )
            )

        stack.restore(edited)
        logger.info("deleted %d wall points (undo depth %d)", removed, len(self.history))
        return removed

    @property
    def can_undo(self) -> bool:
        return bool(self.history)

    def undo(self, stack: PointCloudStack) -> bool:
        if not self.history:
            return False
        stack.restore(self.history.pop())
        return True
