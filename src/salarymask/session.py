"""Manual selection session.

A :class:`RedactionSession` is the explicit state an operator works on while
marking regions of a PDF for flattening: the loaded document, the page being
viewed, the preview zoom and the regions drawn so far. Host front ends (a web
page, a desktop viewer, the HTTP service in :mod:`salarymask.api`) translate
their pointer and button events into the transition methods below and never
touch the state directly.

States::

    LOADING -> READY <-> DRAWING
    READY -> COMMITTING -> CLOSED        (success)
    COMMITTING -> READY                  (failure, retry or cancel allowed)
    READY / DRAWING -> CANCELLED

Closed and cancelled sessions have released their document and reject every
further operation.

Transitions are serialized per session, so a host may call them from several
threads. A call made while a commit is running waits for it to finish.
"""

from __future__ import annotations

import functools
import threading
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import fitz  # PyMuPDF

from .errors import DegenerateSelectionError, RedactionError, SessionStateError
from .extract import open_document
from .geometry import Rect
from .logging import get_logger
from .pipeline.config import RunConfig
from .pipeline.rendering import flatten_and_redact
from .types import RedactionResult, SelectedRegion

logger = get_logger(__name__)


def _synchronized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


class SessionState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    DRAWING = "drawing"
    COMMITTING = "committing"
    CLOSED = "closed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PagePreview:
    page: int
    scale: float
    width: int
    height: int
    png: bytes


class RedactionSession:
    """Interactive region selection over one PDF, committed by flattening.

    Parameters
    ----------
    document_bytes:
        The PDF to redact. The session keeps its own copy for its lifetime.
    cfg:
        Zoom bounds, preview and raster scales.

    Raises
    ------
    DocumentLoadError
        If the bytes cannot be opened; the session ends up ``CLOSED``.
    """

    def __init__(self, document_bytes: bytes, cfg: Optional[RunConfig] = None) -> None:
        self.cfg = cfg or RunConfig()
        self._state = SessionState.LOADING
        self._regions: List[SelectedRegion] = []
        self._drag_start: Optional[Tuple[float, float]] = None
        self._commit_guard = threading.Lock()
        self._lock = threading.RLock()
        self._current_page = 1
        self._scale = self.cfg.preview_scale
        self._bytes: Optional[bytes] = None
        self._doc: Optional[fitz.Document] = None
        self._page_count = 0
        try:
            self._doc = open_document(document_bytes)
        except RedactionError:
            self._state = SessionState.CLOSED
            raise
        self._bytes = bytes(document_bytes)
        self._page_count = self._doc.page_count
        self._state = SessionState.READY

    # --- Introspection ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def page_count(self) -> int:
        return self._page_count

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def scale(self) -> float:
        return self._scale

    @property
    def regions(self) -> Tuple[SelectedRegion, ...]:
        return tuple(self._regions)

    @property
    def can_commit(self) -> bool:
        return self._state is SessionState.READY and bool(self._regions)

    def regions_on_page(self, page: Optional[int] = None) -> List[Tuple[int, SelectedRegion]]:
        """Regions of ``page`` (default: current page) with their global index."""
        target = self._current_page if page is None else page
        return [(i, r) for i, r in enumerate(self._regions) if r.page == target]

    def _require(self, *states: SessionState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionStateError(
                f"Operation not allowed while the session is {self._state.value} "
                f"(expected {allowed})"
            )

    # --- Navigation and zoom ---

    @_synchronized
    def render_preview(self) -> PagePreview:
        """Render the current page at the current zoom as PNG."""
        self._require(SessionState.READY, SessionState.DRAWING)
        assert self._doc is not None
        page = self._doc.load_page(self._current_page - 1)
        try:
            pix = page.get_pixmap(matrix=fitz.Matrix(self._scale, self._scale), alpha=False)
        except Exception as exc:
            raise RedactionError(
                f"Could not render page {self._current_page} for preview"
            ) from exc
        return PagePreview(
            page=self._current_page,
            scale=self._scale,
            width=pix.width,
            height=pix.height,
            png=pix.tobytes("png"),
        )

    @_synchronized
    def go_to_page(self, page: int) -> bool:
        """Show ``page``; out-of-range requests are ignored and return False."""
        self._require(SessionState.READY)
        if page < 1 or page > self._page_count:
            return False
        self._current_page = page
        return True

    def next_page(self) -> bool:
        return self.go_to_page(self._current_page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self._current_page - 1)

    @_synchronized
    def set_zoom(self, scale: float) -> bool:
        """Change the preview zoom; values outside the configured bounds are ignored.

        Regions already drawn keep the scale they were drawn at.
        """
        self._require(SessionState.READY)
        if scale < self.cfg.min_zoom or scale > self.cfg.max_zoom:
            return False
        self._scale = scale
        return True

    def zoom_in(self) -> bool:
        return self.set_zoom(self._scale + self.cfg.zoom_step)

    def zoom_out(self) -> bool:
        return self.set_zoom(self._scale - self.cfg.zoom_step)

    # --- Drawing ---

    @_synchronized
    def pointer_down(self, x: float, y: float) -> None:
        """Start a candidate rectangle at preview position ``(x, y)``."""
        self._require(SessionState.READY)
        self._drag_start = (x, y)
        self._state = SessionState.DRAWING

    def _candidate(self, x: float, y: float) -> Rect:
        assert self._drag_start is not None
        sx, sy = self._drag_start
        return Rect(min(sx, x), min(sy, y), abs(x - sx), abs(y - sy))

    @_synchronized
    def pointer_move(self, x: float, y: float) -> Optional[Rect]:
        """Current drag rectangle for feedback, or None when not drawing."""
        if self._state is not SessionState.DRAWING:
            return None
        return self._candidate(x, y)

    @_synchronized
    def pointer_up(self, x: float, y: float) -> Optional[SelectedRegion]:
        """Finish the drag; keep the rectangle only if both sides reach the minimum.

        Hosts should also call this when the pointer leaves the preview.
        Returns the stored region, or None when the drag was discarded.
        """
        if self._state is not SessionState.DRAWING:
            return None
        rect = self._candidate(x, y)
        self._drag_start = None
        self._state = SessionState.READY
        try:
            region = SelectedRegion(
                page=self._current_page,
                x=rect.x,
                y=rect.y,
                width=rect.width,
                height=rect.height,
                scale=self._scale,
            )
        except DegenerateSelectionError:
            logger.debug(
                "Discarded degenerate selection",
                extra={"width": rect.width, "height": rect.height},
            )
            return None
        self._regions.append(region)
        return region

    @_synchronized
    def remove_region(self, index: int) -> SelectedRegion:
        self._require(SessionState.READY)
        if index < 0 or index >= len(self._regions):
            raise IndexError(f"No region #{index}")
        return self._regions.pop(index)

    @_synchronized
    def clear_regions(self) -> int:
        self._require(SessionState.READY)
        removed = len(self._regions)
        self._regions.clear()
        return removed

    # --- Lifecycle ---

    def commit(self) -> RedactionResult:
        """Flatten the pages with regions and close the session.

        On failure the session returns to ``READY`` with its regions intact
        and the error is re-raised, so the operator can retry or cancel.

        Raises
        ------
        SessionStateError
            If there are no regions, the session is not ready, or another
            commit is already running.
        RedactionError
            If flattening fails.
        """
        if not self._commit_guard.acquire(blocking=False):
            raise SessionStateError("A commit is already in progress")
        try:
            return self._flatten_and_close()
        finally:
            self._commit_guard.release()

    @_synchronized
    def _flatten_and_close(self) -> RedactionResult:
        self._require(SessionState.READY)
        if not self._regions:
            raise SessionStateError("Select at least one region before applying the mask")
        assert self._bytes is not None
        self._state = SessionState.COMMITTING
        regions = list(self._regions)
        try:
            out = flatten_and_redact(
                self._bytes,
                regions,
                raster_scale=self.cfg.raster_scale,
                fill_rgb=self.cfg.raster_fill_rgb,
            )
        except RedactionError as exc:
            self._state = SessionState.READY
            logger.warning(
                "Commit failed; session kept open",
                extra={"stage": exc.stage, "error": str(exc)},
            )
            raise
        except Exception as exc:
            self._state = SessionState.READY
            logger.error(
                "Commit failed unexpectedly; session kept open",
                extra={"error": type(exc).__name__},
            )
            raise
        result = RedactionResult(
            output_bytes=out, was_masked=True, masked_count=len(regions)
        )
        self._release(SessionState.CLOSED)
        logger.info("Manual masking committed", extra={"regions": len(regions)})
        return result

    @_synchronized
    def cancel(self) -> None:
        """Discard the session; a running commit must finish first."""
        if self._state in (SessionState.CLOSED, SessionState.CANCELLED):
            return
        self._require(SessionState.READY, SessionState.DRAWING)
        self._release(SessionState.CANCELLED)

    def _release(self, final: SessionState) -> None:
        if self._doc is not None:
            self._doc.close()
        self._doc = None
        self._bytes = None
        self._regions = []
        self._drag_start = None
        self._state = final

    def __enter__(self) -> "RedactionSession":
        return self

    def __exit__(self, *exc_info) -> None:
        if self._state in (SessionState.READY, SessionState.DRAWING):
            self.cancel()

    @_synchronized
    def to_dict(self) -> dict:
        return {
            "state": self._state.value,
            "page_count": self._page_count,
            "current_page": self._current_page,
            "scale": self._scale,
            "regions": [r.to_dict() for r in self._regions],
            "can_commit": self.can_commit,
        }


__all__ = ["SessionState", "PagePreview", "RedactionSession"]
