"""Infrastructure readiness checks for API / Kubernetes probes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

import fitz  # PyMuPDF

from .settings import ServiceSettings


@dataclass
class HealthCheckResult:
    name: str
    status: str  # "pass" | "fail" | "warn"
    detail: Optional[str] = None
    required: bool = True


def _check_render() -> HealthCheckResult:
    """Rasterize a blank page the way flattening does."""
    try:
        with fitz.open() as doc:
            page = doc.new_page(width=72, height=72)
            pix = page.get_pixmap(matrix=fitz.Matrix(2, 2), alpha=False)
            if pix.width != 144 or pix.height != 144:
                return HealthCheckResult(
                    name="render",
                    status="fail",
                    detail=f"Unexpected pixmap size {pix.width}x{pix.height}",
                )
    except Exception as exc:  # pragma: no cover - depends on runtime
        return HealthCheckResult(name="render", status="fail", detail=str(exc))
    return HealthCheckResult(name="render", status="pass")


def _check_font() -> HealthCheckResult:
    """The overlay placeholder needs the base-14 Helvetica font."""
    try:
        with fitz.open() as doc:
            page = doc.new_page(width=72, height=72)
            page.insert_text((4, 20), "***", fontsize=10, fontname="helv")
    except Exception as exc:  # pragma: no cover - depends on runtime
        return HealthCheckResult(
            name="font",
            status="warn",
            detail=f"Placeholder font unavailable: {exc}",
            required=False,
        )
    return HealthCheckResult(name="font", status="pass", required=False)


def _check_policy(policy_path: Optional[str]) -> HealthCheckResult:
    from .policy import load_policy

    try:
        load_policy(policy_path).to_heuristics()
    except Exception as exc:
        return HealthCheckResult(name="policy", status="fail", detail=str(exc))
    return HealthCheckResult(name="policy", status="pass", detail=policy_path or "default")


def run_readiness_checks(settings: ServiceSettings) -> List[HealthCheckResult]:
    checks: List[HealthCheckResult] = []
    if settings.readiness_check_render:
        checks.append(_check_render())
    if settings.readiness_check_font:
        checks.append(_check_font())
    if settings.readiness_check_policy:
        checks.append(_check_policy(settings.policy_path))
    return checks
