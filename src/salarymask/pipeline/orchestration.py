"""High-level orchestration for salarymask redaction runs."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from salarymask.audit import write_audit
from salarymask.logging import get_logger
from salarymask.redact import cover_regions
from salarymask.types import RedactionResult, SelectedRegion

from .config import RunConfig
from .detection import detect_salary_regions
from .rendering import flatten_and_redact

logger = get_logger("salarymask")


def mask_salary_info(document_bytes: bytes, cfg: RunConfig) -> RedactionResult:
    """Detect salary text and cover it with overlay boxes.

    When nothing is detected the input bytes are returned unchanged with
    ``was_masked=False``. The overlay leaves the original text extractable;
    see :mod:`salarymask.redact`.
    """
    t0 = time.perf_counter()
    regions = detect_salary_regions(document_bytes, cfg)
    if not regions:
        logger.info("No salary information detected; document left unchanged")
        return RedactionResult(output_bytes=document_bytes, was_masked=False, masked_count=0)
    out = cover_regions(document_bytes, regions, cfg)
    logger.info(
        "Automatic masking finished",
        extra={"masked": len(regions), "duration": round(time.perf_counter() - t0, 3)},
    )
    return RedactionResult(output_bytes=out, was_masked=True, masked_count=len(regions))


def mask_selected_regions(
    document_bytes: bytes, regions: Sequence[SelectedRegion], cfg: RunConfig
) -> RedactionResult:
    """Flatten the pages referenced by ``regions`` and cover the regions."""
    if not regions:
        return RedactionResult(output_bytes=document_bytes, was_masked=False, masked_count=0)
    out = flatten_and_redact(
        document_bytes,
        regions,
        raster_scale=cfg.raster_scale,
        fill_rgb=cfg.raster_fill_rgb,
    )
    return RedactionResult(output_bytes=out, was_masked=True, masked_count=len(regions))


def masked_filename(name: str) -> str:
    """Storage name convention for masked copies."""
    return f"masked_{Path(name).name}"


def process_path(
    input_path: str,
    output_path: Optional[str],
    cfg: RunConfig,
    *,
    regions: Optional[Sequence[SelectedRegion]] = None,
    audit: bool = True,
) -> Dict[str, Any]:
    """Mask a PDF on disk and write the result next to it (or to ``output_path``).

    With ``regions`` the pages they reference are flattened; otherwise salary
    text is detected and covered with overlay boxes.
    """
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"Input not found: {input_path}")
    if path.suffix.lower() != ".pdf":
        raise ValueError(f"Unsupported input type: {input_path}")
    out_path = Path(output_path) if output_path else path.with_name(masked_filename(path.name))

    data = path.read_bytes()
    if regions is not None:
        mode = "flatten"
        result = mask_selected_regions(data, regions, cfg)
    else:
        mode = "overlay"
        result = mask_salary_info(data, cfg)

    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_bytes(result.output_bytes)
    summary: Dict[str, Any] = {
        "input": str(path),
        "out": str(out_path),
        "mode": mode,
        "masked": result.was_masked,
        "masked_count": result.masked_count,
        "text_recoverable": mode == "overlay" and result.was_masked,
    }
    if audit:
        summary["audit"] = str(write_audit(str(path), str(out_path), summary, cfg.__dict__))
    return summary


__all__ = ["mask_salary_info", "mask_selected_regions", "masked_filename", "process_path"]
