"""Coordinate conversions between render space and native PDF space.

Render space has its origin at the top-left with y growing downward and is
expressed at some zoom ``scale`` over the page's native size. PDF space is the
page's own system: origin bottom-left, y growing upward, scale 1.0.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float

    @property
    def x1(self) -> float:
        return self.x + self.width

    @property
    def y1(self) -> float:
        return self.y + self.height


def _check_scale(scale: float) -> None:
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")


def to_pdf_space(render_rect: Rect, render_scale: float, page_height: float) -> Rect:
    """Map a top-left render-space rectangle to bottom-left PDF space.

    Parameters
    ----------
    render_rect:
        Rectangle in render pixels.
    render_scale:
        Zoom factor the rectangle was measured at.
    page_height:
        Native page height (scale 1.0) in PDF units.

    Returns
    -------
    Rect
        The same area at scale 1.0 with ``y`` measured from the page bottom.
    """
    _check_scale(render_scale)
    width = render_rect.width / render_scale
    height = render_rect.height / render_scale
    x = render_rect.x / render_scale
    y = page_height - (render_rect.y / render_scale) - height
    return Rect(x, y, width, height)


def rescale(rect: Rect, from_scale: float, to_scale: float) -> Rect:
    """Re-express a render-space rectangle measured at ``from_scale`` at ``to_scale``."""
    _check_scale(from_scale)
    _check_scale(to_scale)
    factor = to_scale / from_scale
    return Rect(rect.x * factor, rect.y * factor, rect.width * factor, rect.height * factor)


def inflate(rect: Rect, margin: float, min_width: float = 0.0, min_height: float = 0.0) -> Rect:
    """Grow ``rect`` by ``margin`` on every side, then widen to the given minimum size.

    The minimum size extends right and downward from the inflated origin.
    """
    return Rect(
        rect.x - margin,
        rect.y - margin,
        max(rect.width + 2 * margin, min_width),
        max(rect.height + 2 * margin, min_height),
    )


def to_pixel_box(rect: Rect, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
    """Round ``rect`` outward to whole pixels and clamp it to the image.

    Returns ``(x, y, w, h)``; ``w``/``h`` are zero when the rectangle lies
    completely outside the image.
    """
    x0 = min(max(int(math.floor(rect.x)), 0), image_width)
    y0 = min(max(int(math.floor(rect.y)), 0), image_height)
    x1 = min(max(int(math.ceil(rect.x1)), 0), image_width)
    y1 = min(max(int(math.ceil(rect.y1)), 0), image_height)
    return (x0, y0, max(0, x1 - x0), max(0, y1 - y0))


__all__ = ["Rect", "to_pdf_space", "rescale", "inflate", "to_pixel_box"]
