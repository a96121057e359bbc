"""Heuristic salary detection over positioned text fragments.

This module uses the third-party ``regex`` package for the salary patterns.
Detection works on individual fragments, not on a reconstructed text stream:
salary values in résumés and application forms usually sit in a table cell
next to their label, so a value is tied to a keyword when both share the same
visual row on the same page, however far apart they are horizontally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set

import regex as re

from .logging import get_logger
from .types import MatchedRegion, MatchReason, TextFragment

logger = get_logger(__name__)

_KO_KEYWORDS = r"(?:희망\s*연봉|현재\s*연봉|예상\s*연봉|희망\s*급여|현재\s*급여|연봉|년봉|급여|월급|월봉)"
_EN_KEYWORDS = r"(?:annual\s*salary|expected\s*salary|current\s*salary|salary|pay)"

# Keyword + amount (Korean), bare amount + unit, keyword + amount (English).
# Order matters: the first pattern that matches decides the fragment.
KO_SALARY_RE = re.compile(
    _KO_KEYWORDS + r"[\s:：\-~]*[\d,\.]+\s*(?:천만원|천만|만원|만|원)?", re.I
)
AMOUNT_UNIT_RE = re.compile(r"\d[\d,]*\s*(?:천만원|만원)", re.I)
EN_SALARY_RE = re.compile(
    _EN_KEYWORDS + r"[\s:：\-~]*[\d,\.]+\s*(?:won|krw|만원|만|원)?", re.I
)

DEFAULT_PATTERNS = (KO_SALARY_RE, AMOUNT_UNIT_RE, EN_SALARY_RE)

DEFAULT_KEYWORDS = (
    "연봉",
    "년봉",
    "급여",
    "월급",
    "월봉",
    "salary",
    "pay",
    "희망연봉",
    "현재연봉",
    "예상연봉",
    "희망급여",
    "현재급여",
)

DEFAULT_UNIT_TOKENS = ("만원", "천만", "원", "만")

# A cell holding nothing but an amount, e.g. "3,500", "4.5", "3500만원".
DEFAULT_AMOUNT_RE = re.compile(r"^[\d,\.]*\s*(?:천만원|만원|만|원)?$")

DIGIT_RUN_RE = re.compile(r"\d+")

# Vertical distance (render units at scale 1.0) under which two fragment
# centres count as the same row.
DEFAULT_ROW_TOLERANCE = 20.0


@dataclass
class SalaryHeuristics:
    """Tunable parameters of the salary matcher."""

    patterns: Sequence["re.Pattern[str]"] = DEFAULT_PATTERNS
    keywords: Sequence[str] = DEFAULT_KEYWORDS
    unit_tokens: Sequence[str] = DEFAULT_UNIT_TOKENS
    amount_pattern: "re.Pattern[str]" = DEFAULT_AMOUNT_RE
    row_tolerance: float = DEFAULT_ROW_TOLERANCE
    _folded_keywords: List[str] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.row_tolerance < 0:
            raise ValueError("row_tolerance must be non-negative")
        self._folded_keywords = [kw.casefold() for kw in self.keywords if kw]

    def pattern_match(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)

    def has_keyword(self, text: str) -> bool:
        folded = text.casefold()
        return any(kw in folded for kw in self._folded_keywords)

    def looks_like_amount(self, text: str) -> bool:
        """True when ``text`` has a digit run and a currency unit or amount shape."""
        if not DIGIT_RUN_RE.search(text):
            return False
        if any(unit in text for unit in self.unit_tokens):
            return True
        return bool(self.amount_pattern.match(text.strip()))


def _same_row(a: TextFragment, b: TextFragment, tolerance: float) -> bool:
    return a.page == b.page and abs(a.center_y - b.center_y) <= tolerance


def find_matches(
    fragments: Sequence[TextFragment],
    heuristics: Optional[SalaryHeuristics] = None,
) -> List[MatchedRegion]:
    """Flag fragments that carry salary information.

    Each fragment is visited once, left to right, skipping fragments already
    claimed. A fragment matching one of the direct patterns is claimed whole
    as ``pattern_match``. Otherwise, if it contains a salary keyword, it is
    claimed as ``keyword_match`` and every unclaimed amount-like fragment on
    the same row of the same page is claimed as ``nearby_number``.

    Parameters
    ----------
    fragments:
        Fragments from :func:`salarymask.extract.extract_fragments`.
    heuristics:
        Matcher parameters; defaults to :class:`SalaryHeuristics`.

    Returns
    -------
    list[MatchedRegion]
        Claimed fragments in discovery order. Empty when nothing matched.
    """
    h = heuristics or SalaryHeuristics()
    matches: List[MatchedRegion] = []
    claimed: Set[int] = set()

    for i, frag in enumerate(fragments):
        if i in claimed:
            continue

        if h.pattern_match(frag.text):
            matches.append(MatchedRegion(frag, MatchReason.PATTERN_MATCH))
            claimed.add(i)
            continue

        if not h.has_keyword(frag.text):
            continue

        matches.append(MatchedRegion(frag, MatchReason.KEYWORD_MATCH))
        claimed.add(i)
        for j, other in enumerate(fragments):
            if j in claimed:
                continue
            if _same_row(frag, other, h.row_tolerance) and h.looks_like_amount(other.text):
                matches.append(MatchedRegion(other, MatchReason.NEARBY_NUMBER))
                claimed.add(j)

    logger.info(
        "Salary matching finished",
        extra={
            "fragments": len(fragments),
            "matches": len(matches),
            "by_reason": _count_reasons(matches),
        },
    )
    return matches


def _count_reasons(matches: Iterable[MatchedRegion]) -> dict:
    counts: dict = {}
    for m in matches:
        counts[m.reason.value] = counts.get(m.reason.value, 0) + 1
    return counts


__all__ = [
    "SalaryHeuristics",
    "find_matches",
    "DEFAULT_PATTERNS",
    "DEFAULT_KEYWORDS",
    "DEFAULT_UNIT_TOKENS",
    "DEFAULT_ROW_TOLERANCE",
]
