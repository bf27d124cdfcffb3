from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .models import Frame


@dataclass(frozen=True)
class SyntheticVideoConfig:
    """Configuration for synthetic color-Doppler vessel sequences."""

    scenario: str = "pulsatile"
    width: int = 96
    height: int = 72
    frame_count: int = 60
    fps: float = 30.0
    beat_period_s: float = 1.0
    noise_level: float = 3.0
    seed: int = 42


@dataclass(frozen=True)
class SyntheticScenario:
    """Appearance envelope of one synthetic sequence."""

    background: int
    wall_brightness: int
    lumen_brightness: int
    jet: bool
    alternate_direction: bool
    jet_offset_ratio: float


@dataclass(frozen=True)
class SyntheticVideo:
    frames: list[Frame]
    duration_s: float
    fps: float
    scenario: str


SYNTHETIC_SCENARIOS: dict[str, SyntheticScenario] = {
    "neutral": SyntheticScenario(
        background=128,
        wall_brightness=128,
        lumen_brightness=128,
        jet=False,
        alternate_direction=False,
        jet_offset_ratio=0.0,
    ),
    "pulsatile": SyntheticScenario(
        background=30,
        wall_brightness=200,
        lumen_brightness=15,
        jet=True,
        alternate_direction=False,
        jet_offset_ratio=0.25,
    ),
    "oscillating": SyntheticScenario(
        background=30,
        wall_brightness=200,
        lumen_brightness=15,
        jet=True,
        alternate_direction=True,
        jet_offset_ratio=0.0,
    ),
}


def available_scenarios() -> tuple[str, ...]:
    return tuple(sorted(SYNTHETIC_SCENARIOS))


def _pulse(time_s: float, period_s: float) -> float:
    return 0.5 + 0.5 * math.sin(2.0 * math.pi * time_s / period_s)


def render_frame(
    time_s: float,
    config: SyntheticVideoConfig,
    rng: np.random.Generator | None = None,
) -> np.ndarray:
    """Render one RGB uint8 frame: bright wall ring, dark lumen, pulsing color jet."""

    if config.scenario not in SYNTHETIC_SCENARIOS:
        raise ValueError(f"unknown scenario: {config.scenario}")
    scenario = SYNTHETIC_SCENARIOS[config.scenario]

    height, width = config.height, config.width
    yy, xx = np.mgrid[0:height, 0:width]
    center_x, center_y = width / 2.0, height / 2.0
    radius = np.hypot(xx - center_x, yy - center_y)
    outer = min(width, height) * 0.42
    inner = min(width, height) * 0.32

    gray = np.full((height, width), float(scenario.background))
    gray[radius < outer] = scenario.wall_brightness
    gray[radius < inner] = scenario.lumen_brightness
    if rng is not None and config.noise_level > 0:
        gray = gray + rng.normal(0.0, config.noise_level, size=gray.shape)
    gray = np.clip(gray, 0, 255)

    image = np.repeat(gray[..., None], 3, axis=2)
    if scenario.jet:
        pulse = _pulse(time_s, config.beat_period_s)
        jet_radius = inner * (0.35 + 0.45 * pulse)
        jet_x = center_x + inner * scenario.jet_offset_ratio
        jet = (np.hypot(xx - jet_x, yy - center_y) < jet_radius) & (radius < inner)
        intensity = 120.0 + 120.0 * pulse
        beat = int(math.floor(time_s / config.beat_period_s))
        channel = 2 if scenario.alternate_direction and beat % 2 else 0
        color = np.full(3, 25.0)
        color[channel] = intensity
        image[jet] = color

    return image.astype(np.uint8)


def generate_synthetic_video(config: SyntheticVideoConfig | None = None) -> SyntheticVideo:
    cfg = config or SyntheticVideoConfig()
    if cfg.frame_count <= 0:
        raise ValueError("frame_count must be positive")
    if cfg.fps <= 0:
        raise ValueError("fps must be positive")
    if cfg.width < 8 or cfg.height < 8:
        raise ValueError("frames must be at least 8x8 pixels")

    rng = np.random.default_rng(cfg.seed)
    frames = [
        Frame(pixels=render_frame(index / cfg.fps, cfg, rng), timestamp_s=index / cfg.fps)
        for index in range(cfg.frame_count)
    ]
    return SyntheticVideo(
        frames=frames,
        duration_s=cfg.frame_count / cfg.fps,
        fps=cfg.fps,
        scenario=cfg.scenario,
    )


def uniform_frames(count: int, value: int = 128, width: int = 32, height: int = 24) -> list[Frame]:
    """Flat gray frames with no flow color and no wall contrast."""

    pixels = np.full((height, width, 3), value, dtype=np.uint8)
    return [Frame(pixels=pixels.copy(), timestamp_s=index / 30.0) for index in range(count)]
