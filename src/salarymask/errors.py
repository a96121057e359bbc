"""Exception hierarchy for the redaction pipeline.

Every pipeline failure is raised as a :class:`RedactionError` carrying the
stage that failed (``load``, ``extract``, ``match``, ``redact`` or
``session``). The message is meant for end users; the underlying parser
exception is kept as ``__cause__`` for logs.
"""

from __future__ import annotations

from typing import Optional


class RedactionError(Exception):
    """Base error for a failed redaction stage."""

    stage: str = "redact"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage is not None:
            self.stage = stage

    def to_dict(self) -> dict:
        return {"stage": self.stage, "detail": str(self)}


class DocumentLoadError(RedactionError):
    """The input bytes are not a readable PDF document."""

    stage = "load"


class PageRenderError(RedactionError):
    """A page could not be rasterized; the whole redaction is aborted."""

    stage = "redact"

    def __init__(self, message: str, *, page: int) -> None:
        super().__init__(message)
        self.page = page

    def __reduce__(self):
        # keyword-only ``page`` is not part of ``args``; needed across process pools
        return (_rebuild_page_render_error, (str(self), self.page))


def _rebuild_page_render_error(message: str, page: int) -> "PageRenderError":
    return PageRenderError(message, page=page)


class SessionStateError(RedactionError):
    """An operation is not legal in the session's current state."""

    stage = "session"


class UploadPermissionError(RedactionError):
    """The caller is not allowed to store attachments."""

    stage = "upload"


class DegenerateSelectionError(ValueError):
    """A drawn rectangle is smaller than the minimum selection size."""
