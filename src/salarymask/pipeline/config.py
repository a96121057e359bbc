"""Configuration primitives for the salarymask pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field


@dataclass
class RunConfig:
    """Runtime configuration for detection, overlay and flattening."""

    # Manual selection preview
    preview_scale: float = 1.5
    min_zoom: float = 0.5
    max_zoom: float = 3.0
    zoom_step: float = 0.25
    # Flattening renders at a fixed scale, independent of the preview zoom
    raster_scale: float = 2.0
    raster_fill_rgb: Tuple[int, int, int] = (255, 255, 255)
    # Overlay boxes, in PDF units
    overlay_margin: float = 2.0
    overlay_min_width: float = 30.0
    overlay_min_height: float = 14.0
    overlay_fill: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    overlay_border: Tuple[float, float, float] = (0.9, 0.9, 0.9)
    overlay_border_width: float = 0.5
    placeholder: Optional[str] = "***"
    placeholder_color: Tuple[float, float, float] = (0.5, 0.5, 0.5)
    placeholder_max_size: float = 12.0
    policy_path: Optional[str] = None

    def __post_init__(self) -> None:
        if self.raster_scale <= 0 or self.preview_scale <= 0:
            raise ValueError("render scales must be positive")
        if not self.min_zoom <= self.preview_scale <= self.max_zoom:
            raise ValueError("preview_scale must lie within [min_zoom, max_zoom]")


class DetectionItem(BaseModel):
    """One flagged fragment as reported to callers."""

    text: str
    page: int
    reason: str


class DetectionPreview(BaseModel):
    """Dry-run detection summary; nothing is modified."""

    has_salary_info: bool
    count: int
    items: List[DetectionItem] = Field(default_factory=list)
    error: Optional[str] = None


__all__ = ["RunConfig", "DetectionItem", "DetectionPreview"]
