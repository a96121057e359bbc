"""Page flattening: the destructive, text-safe redaction mode.

Pages that carry at least one operator-selected region are rendered to a
bitmap, the regions are painted over on the bitmap, and the bitmap replaces the
page in a freshly built document. All other pages are copied verbatim so their
text stays selectable and searchable.

Nothing of a flattened page's original content stream reaches the output; only
pixels do. Any failure while rendering a page aborts the whole run rather than
emitting a document in which that page was silently left intact.
"""

from __future__ import annotations

import time
from typing import Dict, List, Sequence, Tuple

import fitz  # PyMuPDF
from PIL import Image

from salarymask.errors import PageRenderError, RedactionError
from salarymask.extract import open_document
from salarymask.geometry import Rect, rescale, to_pixel_box
from salarymask.logging import get_logger
from salarymask.redact import image_to_pdf_page, redact_page
from salarymask.types import SelectedRegion

logger = get_logger(__name__)


def render_page_image(page: fitz.Page, scale: float) -> Image.Image:
    """Rasterize a page at ``scale`` onto an opaque white RGB bitmap."""
    pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
    mode = "RGB" if pix.n < 4 else "RGBA"
    im = Image.frombytes(mode, (pix.width, pix.height), pix.samples)
    if mode == "RGBA":
        im = im.convert("RGB")
    return im


def raster_boxes(
    regions: Sequence[SelectedRegion], raster_scale: float, image_size: Tuple[int, int]
) -> List[Tuple[int, int, int, int]]:
    """Convert preview-space regions to pixel boxes on a bitmap rendered at ``raster_scale``.

    Each region is rescaled from the zoom it was drawn at to the raster scale,
    then rounded outward to whole pixels so the cover never falls short.
    """
    W, H = image_size
    boxes: List[Tuple[int, int, int, int]] = []
    for region in regions:
        rect = rescale(
            Rect(region.x, region.y, region.width, region.height),
            region.scale,
            raster_scale,
        )
        box = to_pixel_box(rect, W, H)
        if box[2] > 0 and box[3] > 0:
            boxes.append(box)
    return boxes


def _flatten_page(
    page: fitz.Page,
    regions: Sequence[SelectedRegion],
    raster_scale: float,
    fill_rgb: Tuple[int, int, int],
) -> bytes:
    page_number = page.number + 1
    try:
        img = render_page_image(page, raster_scale)
    except Exception as exc:
        raise PageRenderError(
            f"Could not render page {page_number} for redaction", page=page_number
        ) from exc
    boxes = raster_boxes(regions, raster_scale, img.size)
    img = redact_page(img, boxes, fill_rgb=fill_rgb)
    try:
        return image_to_pdf_page(img, page.rect.width, page.rect.height)
    except Exception as exc:
        raise PageRenderError(
            f"Could not rebuild page {page_number} from its image", page=page_number
        ) from exc


def flatten_and_redact(
    document_bytes: bytes,
    regions: Sequence[SelectedRegion],
    raster_scale: float = 2.0,
    fill_rgb: Tuple[int, int, int] = (255, 255, 255),
) -> bytes:
    """Flatten every page referenced by ``regions`` and cover the regions.

    Parameters
    ----------
    document_bytes:
        Original PDF bytes; never modified.
    regions:
        Operator-selected rectangles in preview pixels.
    raster_scale:
        Render scale for flattened pages, independent of the preview zoom.
    fill_rgb:
        Colour painted over each region.

    Returns
    -------
    bytes
        A new PDF with the same page count and page sizes.

    Raises
    ------
    DocumentLoadError
        If the input cannot be opened.
    PageRenderError
        If any affected page cannot be rasterized or rebuilt.
    RedactionError
        If copying pages or saving the output fails.
    """
    if raster_scale <= 0:
        raise ValueError("raster_scale must be positive")
    by_page: Dict[int, List[SelectedRegion]] = {}
    for region in regions:
        by_page.setdefault(region.page, []).append(region)

    t0 = time.perf_counter()
    src = open_document(document_bytes)
    page_count = src.page_count
    out = fitz.open()
    try:
        stray = sorted(p for p in by_page if p > page_count)
        if stray:
            logger.warning(
                "Ignoring regions beyond the last page",
                extra={"pages": stray, "page_count": page_count},
            )
        for index in range(page_count):
            page_number = index + 1
            page_regions = by_page.get(page_number)
            if not page_regions:
                try:
                    out.insert_pdf(src, from_page=index, to_page=index)
                except Exception as exc:
                    raise RedactionError(f"Could not copy page {page_number}") from exc
                continue
            page_pdf = _flatten_page(
                src.load_page(index), page_regions, raster_scale, fill_rgb
            )
            try:
                with fitz.open(stream=page_pdf, filetype="pdf") as img_doc:
                    out.insert_pdf(img_doc)
            except Exception as exc:
                raise PageRenderError(
                    f"Could not assemble flattened page {page_number}", page=page_number
                ) from exc
        try:
            data = out.tobytes(garbage=3, deflate=True)
        except Exception as exc:
            raise RedactionError("Could not save the redacted document") from exc
    finally:
        out.close()
        src.close()

    logger.info(
        "Flattened redaction applied",
        extra={
            "regions": len(regions),
            "flattened_pages": sorted(p for p in by_page if p <= page_count),
            "duration": round(time.perf_counter() - t0, 3),
        },
    )
    return data


__all__ = ["render_page_image", "raster_boxes", "flatten_and_redact"]
