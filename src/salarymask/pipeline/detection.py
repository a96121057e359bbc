"""Detection stage: text extraction followed by the salary heuristics."""

from __future__ import annotations

from typing import List, Optional

from salarymask.errors import RedactionError
from salarymask.extract import extract_fragments
from salarymask.logging import get_logger
from salarymask.policy import load_policy
from salarymask.salary_detect import SalaryHeuristics, find_matches
from salarymask.types import MatchedRegion

from .config import DetectionItem, DetectionPreview, RunConfig

logger = get_logger(__name__)


def resolve_heuristics(cfg: RunConfig) -> SalaryHeuristics:
    """Build matcher parameters from the configured policy."""
    try:
        return load_policy(cfg.policy_path).to_heuristics()
    except (OSError, ValueError) as exc:
        raise RedactionError(
            f"Could not load salary policy '{cfg.policy_path}'", stage="match"
        ) from exc


def detect_salary_regions(
    document_bytes: bytes,
    cfg: RunConfig,
    heuristics: Optional[SalaryHeuristics] = None,
) -> List[MatchedRegion]:
    """Return every fragment of the document flagged as salary information.

    Raises
    ------
    DocumentLoadError
        If the document cannot be opened.
    """
    fragments = extract_fragments(document_bytes)
    return find_matches(fragments, heuristics or resolve_heuristics(cfg))


def check_salary_info(document_bytes: bytes, cfg: RunConfig) -> DetectionPreview:
    """Dry-run detection for a preview; never raises.

    Failures are reported through ``error`` with a zero count so callers can
    show the outcome without special-casing exceptions.
    """
    try:
        regions = detect_salary_regions(document_bytes, cfg)
    except RedactionError as exc:
        logger.warning(
            "Salary detection preview failed",
            extra={"stage": exc.stage, "error": str(exc)},
        )
        return DetectionPreview(has_salary_info=False, count=0, error=str(exc))
    return DetectionPreview(
        has_salary_info=bool(regions),
        count=len(regions),
        items=[DetectionItem(**r.to_dict()) for r in regions],
    )


__all__ = ["resolve_heuristics", "detect_salary_regions", "check_salary_info"]
