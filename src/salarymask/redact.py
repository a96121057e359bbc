"""Redaction routines.

Two kinds of redaction live here:

* pixel-level helpers used when a page is flattened: fill rectangles on a page
  bitmap and wrap that bitmap into a single-page PDF of an exact size;
* the overlay redactor, which paints opaque boxes over detected salary text
  directly on the existing PDF pages.

The overlay redactor is a visual deterrent only. It does not touch the page
content stream, so the covered text can still be selected, copied or
extracted from its output. Use :func:`salarymask.pipeline.rendering.flatten_and_redact`
when the text must be unrecoverable.
"""

from __future__ import annotations

import io
from collections import defaultdict
from typing import TYPE_CHECKING, Dict, List, Sequence, Tuple

import fitz  # PyMuPDF
import img2pdf
from PIL import Image, ImageDraw

from .errors import RedactionError
from .extract import open_document
from .geometry import Rect, inflate
from .logging import get_logger
from .types import MatchedRegion

if TYPE_CHECKING:
    from .pipeline.config import RunConfig

logger = get_logger(__name__)


def redact_page(
    img: Image.Image,
    boxes: List[Tuple[int, int, int, int]],
    fill_rgb=(255, 255, 255),
) -> Image.Image:
    """Draw filled rectangles over regions of a page image, in place.

    Parameters
    ----------
    img:
        Page bitmap.
    boxes:
        List of rectangles ``(x, y, w, h)`` in image pixels.
    fill_rgb:
        Fill color as an RGB tuple.

    Returns
    -------
    PIL.Image.Image
        Redacted RGB image.
    """
    if img.mode != "RGB":
        img = img.convert("RGB")
    draw = ImageDraw.Draw(img)
    for x, y, w, h in boxes:
        if w <= 0 or h <= 0:
            continue
        # PIL rectangles include the end pixel
        draw.rectangle([x, y, x + w - 1, y + h - 1], fill=tuple(fill_rgb))
    return img


def image_to_pdf_page(img: Image.Image, width_pt: float, height_pt: float) -> bytes:
    """Wrap a page bitmap into a one-page PDF of exactly ``width_pt`` x ``height_pt``.

    The image is stored losslessly (PNG/Flate) and stretched to the page box,
    so a bitmap rendered at any scale lands on the original page geometry.
    """
    if img.mode != "RGB":
        img = img.convert("RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    layout = img2pdf.get_layout_fun(
        pagesize=(width_pt, height_pt), fit=img2pdf.FitMode.exact
    )
    return img2pdf.convert(buf.getvalue(), layout_fun=layout)


def overlay_box(region: MatchedRegion, cfg: RunConfig) -> Rect:
    """Cover rectangle for a matched fragment, in top-left space at scale 1.0."""
    frag = region.fragment
    return inflate(
        Rect(frag.x, frag.y, frag.width, frag.height),
        cfg.overlay_margin,
        min_width=cfg.overlay_min_width,
        min_height=cfg.overlay_min_height,
    )


def _drawing_rect(page: fitz.Page, box: Rect) -> fitz.Rect:
    """Map a box in the page's visible space onto the unrotated page for drawing.

    Text extraction reports positions relative to ``page.rect``, which is
    rotated and starts at ``(0, 0)`` whatever the mediabox origin. Drawing
    methods take unrotated coordinates.
    """
    return fitz.Rect(box.x, box.y, box.x1, box.y1) * page.derotation_matrix


def _draw_placeholder(page: fitz.Page, box: Rect, text_height: float, cfg: RunConfig) -> bool:
    size = min(text_height or 10.0, cfg.placeholder_max_size)
    anchor = fitz.Point(box.x + 4, box.y1 - 3) * page.derotation_matrix
    try:
        page.insert_text(
            anchor,
            cfg.placeholder,
            fontsize=size,
            fontname="helv",
            color=cfg.placeholder_color,
            rotate=page.rotation,
            overlay=True,
        )
    except Exception as exc:
        logger.warning(
            "Placeholder glyph could not be drawn; keeping the box only",
            extra={"page": page.number + 1, "error": type(exc).__name__},
        )
        return False
    return True


def cover_regions(
    document_bytes: bytes,
    regions: Sequence[MatchedRegion],
    cfg: RunConfig,
) -> bytes:
    """Paint opaque boxes over matched fragments and return the new PDF bytes.

    Each box is the fragment's bounding box grown by ``cfg.overlay_margin`` on
    every side, never smaller than ``overlay_min_width`` x ``overlay_min_height``.
    A placeholder string is written into each box when configured; failing to
    draw it is logged and does not abort the run.

    This does not remove the covered text from the document. The original
    text runs stay in the page content stream and remain extractable.

    Raises
    ------
    DocumentLoadError
        If ``document_bytes`` cannot be opened.
    RedactionError
        If drawing or saving the document fails.
    """
    by_page: Dict[int, List[MatchedRegion]] = defaultdict(list)
    for region in regions:
        by_page[region.page].append(region)

    doc = open_document(document_bytes)
    try:
        placeholders_skipped = 0
        for page_number, page_regions in sorted(by_page.items()):
            if page_number > doc.page_count:
                logger.warning(
                    "Ignoring overlay regions beyond the last page",
                    extra={"page": page_number, "page_count": doc.page_count},
                )
                continue
            page = doc.load_page(page_number - 1)
            for region in page_regions:
                box = overlay_box(region, cfg)
                rect = _drawing_rect(page, box)
                try:
                    page.draw_rect(
                        rect,
                        color=cfg.overlay_border,
                        fill=cfg.overlay_fill,
                        width=cfg.overlay_border_width,
                        overlay=True,
                    )
                except Exception as exc:
                    raise RedactionError(
                        f"Could not draw cover box on page {page_number}"
                    ) from exc
                if cfg.placeholder and not _draw_placeholder(
                    page, box, region.fragment.height, cfg
                ):
                    placeholders_skipped += 1
        try:
            out = doc.tobytes(garbage=3, deflate=True)
        except Exception as exc:
            raise RedactionError("Could not save the masked document") from exc
    finally:
        doc.close()
    logger.info(
        "Overlay redaction applied",
        extra={
            "regions": len(regions),
            "pages": len(by_page),
            "placeholders_skipped": placeholders_skipped,
        },
    )
    return out


__all__ = ["redact_page", "image_to_pdf_page", "overlay_box", "cover_regions"]
