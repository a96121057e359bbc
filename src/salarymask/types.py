"""Core record types shared by the detection and redaction pipelines."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import DegenerateSelectionError

MIN_SELECTION_PX = 10.0


@dataclass(frozen=True)
class TextFragment:
    """One positioned run of text at extraction scale 1.0 (top-left origin)."""

    text: str
    page: int  # 1-based
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.width < 0 or self.height < 0:
            raise ValueError("fragment dimensions must be non-negative")

    @property
    def center_y(self) -> float:
        return self.y + self.height / 2.0


class MatchReason(str, Enum):
    """Why a fragment was flagged as salary information."""

    PATTERN_MATCH = "pattern_match"
    KEYWORD_MATCH = "keyword_match"
    NEARBY_NUMBER = "nearby_number"


@dataclass(frozen=True)
class MatchedRegion:
    fragment: TextFragment
    reason: MatchReason

    @property
    def text(self) -> str:
        return self.fragment.text

    @property
    def page(self) -> int:
        return self.fragment.page

    def to_dict(self) -> dict:
        return {"text": self.text, "page": self.page, "reason": self.reason.value}


@dataclass(frozen=True)
class SelectedRegion:
    """Operator-drawn rectangle in preview pixels at the zoom active when drawn."""

    page: int
    x: float
    y: float
    width: float
    height: float
    scale: float

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError(f"page must be >= 1, got {self.page}")
        if self.scale <= 0:
            raise ValueError(f"scale must be positive, got {self.scale}")
        if self.width < MIN_SELECTION_PX or self.height < MIN_SELECTION_PX:
            raise DegenerateSelectionError(
                f"selection {self.width:.1f}x{self.height:.1f} is below "
                f"the {MIN_SELECTION_PX:.0f}px minimum"
            )

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "scale": self.scale,
        }


@dataclass(frozen=True)
class RedactionResult:
    """Outcome of a redaction run. The caller owns persisting ``output_bytes``."""

    output_bytes: bytes
    was_masked: bool
    masked_count: int


__all__ = [
    "MIN_SELECTION_PX",
    "TextFragment",
    "MatchReason",
    "MatchedRegion",
    "SelectedRegion",
    "RedactionResult",
]
