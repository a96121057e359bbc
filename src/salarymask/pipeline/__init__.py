"""Composable building blocks for the salarymask redaction pipeline."""

from .config import RunConfig, DetectionItem, DetectionPreview
from .detection import check_salary_info, detect_salary_regions, resolve_heuristics
from .rendering import flatten_and_redact
from .orchestration import mask_salary_info, mask_selected_regions, masked_filename, process_path

__all__ = [
    "RunConfig",
    "DetectionItem",
    "DetectionPreview",
    "check_salary_info",
    "detect_salary_regions",
    "resolve_heuristics",
    "flatten_and_redact",
    "mask_salary_info",
    "mask_selected_regions",
    "masked_filename",
    "process_path",
]
