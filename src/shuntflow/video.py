from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from .models import Frame

logger = logging.getLogger(__name__)

DEFAULT_FPS = 30.0


@dataclass(frozen=True)
class VideoSourceConfig:
    """Decoding options for the OpenCV frame source."""

    resize_width: int | None = 640
    max_frames: int | None = None


def _import_cv2() -> Any:
    try:
        import cv2
    except ModuleNotFoundError as error:
        raise RuntimeError(
            "opencv-python is required for video analysis. Install with: pip install -e '.[video]'"
        ) from error
    return cv2


class VideoFrameSource:
    """Frame stream decoded with cv2.VideoCapture, converted to RGB."""

    def __init__(self, video_path: str | Path, config: VideoSourceConfig | None = None) -> None:
        self.cv2 = _import_cv2()
        self.config = config or VideoSourceConfig()
        self.path = Path(video_path)
        if not self.path.exists():
            raise FileNotFoundError(self.path)

        self._capture = self.cv2.VideoCapture(str(self.path))
        if not self._capture.isOpened():
            raise RuntimeError(f"failed to open video: {self.path}")

        fps = self._capture.get(self.cv2.CAP_PROP_FPS)
        if fps <= 0:
            logger.warning("video reports no fps, assuming %.1f", DEFAULT_FPS)
            fps = DEFAULT_FPS
        self.fps = float(fps)
        frame_total = self._capture.get(self.cv2.CAP_PROP_FRAME_COUNT)
        self.duration_s = float(frame_total) / self.fps if frame_total > 0 else 0.0
        self.frames_read = 0

    def read(self) -> Frame | None:
        if self._capture is None:
            return None
        if self.config.max_frames is not None and self.frames_read >= self.config.max_frames:
            self.close()
            return None

        ok, image = self._capture.read()
        if not ok:
            self.close()
            return None

        if self.config.resize_width and image.shape[1] > self.config.resize_width:
            scale = self.config.resize_width / image.shape[1]
            resized_height = int(image.shape[0] * scale)
            image = self.cv2.resize(
                image,
                (self.config.resize_width, resized_height),
                interpolation=self.cv2.INTER_AREA,
            )

        rgb = self.cv2.cvtColor(image, self.cv2.COLOR_BGR2RGB)
        timestamp_s = self.frames_read / self.fps
        self.frames_read += 1
        return Frame(pixels=np.ascontiguousarray(rgb), timestamp_s=timestamp_s)

    def close(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            if self.config.max_frames is not None and self.frames_read:
                # A truncated read covers only part of the file.
                self.duration_s = min(self.duration_s or float("inf"), self.frames_read / self.fps)

    def __enter__(self) -> VideoFrameSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
