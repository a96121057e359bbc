import os
from typing import Iterable, List, Sequence, Tuple

import fitz  # PyMuPDF
import pytest

from salarymask.pipeline.config import RunConfig

Line = Tuple[float, float, str]

A4 = (595, 842)


def build_pdf(pages: Sequence[Iterable[Line]], size: Tuple[float, float] = A4) -> bytes:
    """One page per entry; each line is ``(x, baseline_y, text)`` in top-left points."""
    doc = fitz.open()
    try:
        for lines in pages:
            page = doc.new_page(width=size[0], height=size[1])
            for x, y, text in lines:
                page.insert_text((x, y), text, fontsize=12, fontname="helv")
        return doc.tobytes()
    finally:
        doc.close()


def page_texts(data: bytes) -> List[str]:
    with fitz.open(stream=data, filetype="pdf") as doc:
        return [page.get_text() for page in doc]


@pytest.fixture
def make_pdf():
    return build_pdf


@pytest.fixture
def salary_pdf() -> bytes:
    """Two pages: salary lines on page 1, none on page 2."""
    return build_pdf(
        [
            [
                (72, 100, "Applicant: Jane Doe"),
                (72, 140, "Expected salary: 55,000,000 won"),
                (72, 180, "Phone: 010-1234-5678"),
            ],
            [
                (72, 100, "Education: Seoul National University"),
                (72, 140, "Experience: five years in logistics"),
            ],
        ]
    )


@pytest.fixture
def plain_pdf() -> bytes:
    return build_pdf(
        [
            [
                (72, 100, "Applicant: Jane Doe"),
                (72, 140, "Education: Seoul National University"),
            ]
        ]
    )


@pytest.fixture
def cfg() -> RunConfig:
    return RunConfig()


@pytest.fixture(autouse=True)
def _no_hmac_key(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("SALARYMASK_HMAC_KEY", raising=False)
    yield
    os.environ.pop("SALARYMASK_HMAC_KEY", None)
