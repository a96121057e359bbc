"""Stable entry points for the salarymask pipeline.

The implementation lives in ``salarymask.pipeline`` modules split by
responsibility (detection, rendering, orchestration). This module re-exports
the public surface area expected by downstream callers.
"""

from __future__ import annotations

from .pipeline import (
    RunConfig,
    DetectionItem,
    DetectionPreview,
    check_salary_info,
    detect_salary_regions,
    flatten_and_redact,
    mask_salary_info,
    mask_selected_regions,
    masked_filename,
    process_path,
)
from .session import RedactionSession, SessionState
from .types import MatchedRegion, RedactionResult, SelectedRegion, TextFragment

__all__ = [
    "RunConfig",
    "DetectionItem",
    "DetectionPreview",
    "check_salary_info",
    "detect_salary_regions",
    "flatten_and_redact",
    "mask_salary_info",
    "mask_selected_regions",
    "masked_filename",
    "process_path",
    "RedactionSession",
    "SessionState",
    "MatchedRegion",
    "RedactionResult",
    "SelectedRegion",
    "TextFragment",
]
