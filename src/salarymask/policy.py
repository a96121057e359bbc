"""Salary heuristic policy management.

The matcher's keyword list, direct patterns, currency unit tokens, amount
shape and same-row tolerance were tuned against sample documents and are not
universal truths. A policy file lets deployments adjust them without code
changes. Policies are YAML (or JSON) documents and can be packaged under
``salarymask/data/policies`` and selected by name via ``RunConfig.policy_path``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import orjson
import regex as re
import yaml

from .salary_detect import (
    DEFAULT_AMOUNT_RE,
    DEFAULT_KEYWORDS,
    DEFAULT_PATTERNS,
    DEFAULT_ROW_TOLERANCE,
    DEFAULT_UNIT_TOKENS,
    SalaryHeuristics,
)


@dataclass
class HeuristicPolicy:
    """Salary matcher policy.

    Attributes
    ----------
    name:
        Human-friendly identifier for the policy.
    patterns:
        Direct-match regular expressions, tried in order. ``None`` keeps the
        built-in Korean/English patterns.
    keywords:
        Case-insensitive salary keywords. ``None`` keeps the built-in list.
    extra_keywords:
        Keywords appended to whichever keyword list is in effect.
    unit_tokens:
        Currency unit tokens that make a nearby fragment amount-like.
    amount_pattern:
        Regex a whole fragment must match to count as a bare amount.
    row_tolerance:
        Maximum vertical distance between fragment centres on one row.
    metadata:
        Free-form metadata (e.g., version, source, locale).
    """

    name: str = "default"
    patterns: Optional[List[str]] = None
    keywords: Optional[List[str]] = None
    extra_keywords: List[str] = field(default_factory=list)
    unit_tokens: Optional[List[str]] = None
    amount_pattern: Optional[str] = None
    row_tolerance: float = DEFAULT_ROW_TOLERANCE
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_heuristics(self) -> SalaryHeuristics:
        """Compile the policy into matcher parameters."""
        try:
            patterns = (
                tuple(re.compile(p, re.I) for p in self.patterns)
                if self.patterns is not None
                else DEFAULT_PATTERNS
            )
            amount = re.compile(self.amount_pattern) if self.amount_pattern else DEFAULT_AMOUNT_RE
        except re.error as exc:
            raise ValueError(f"Invalid pattern in policy '{self.name}': {exc}") from exc
        keywords = list(self.keywords) if self.keywords is not None else list(DEFAULT_KEYWORDS)
        keywords.extend(self.extra_keywords)
        return SalaryHeuristics(
            patterns=patterns,
            keywords=tuple(keywords),
            unit_tokens=tuple(self.unit_tokens) if self.unit_tokens is not None else DEFAULT_UNIT_TOKENS,
            amount_pattern=amount,
            row_tolerance=float(self.row_tolerance),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "patterns": self.patterns,
            "keywords": self.keywords,
            "extra_keywords": self.extra_keywords,
            "unit_tokens": self.unit_tokens,
            "amount_pattern": self.amount_pattern,
            "row_tolerance": self.row_tolerance,
            "metadata": self.metadata,
        }

    @staticmethod
    def from_file(path: Union[str, Path, Traversable]) -> "HeuristicPolicy":
        text: str
        stem: str
        suffix: str

        if isinstance(path, Traversable):
            text = path.read_text(encoding="utf-8")
            stem = Path(path.name).stem
            suffix = Path(path.name).suffix.lower()
        else:
            p = Path(path)
            if not p.exists():
                raise FileNotFoundError(f"Policy file not found: {path}")
            text = p.read_text(encoding="utf-8")
            stem = p.stem
            suffix = p.suffix.lower()
        data: Dict[str, Any]
        if suffix in {".yaml", ".yml"}:
            try:
                data = yaml.safe_load(text) or {}
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid policy file: {stem}") from exc
        else:
            data = orjson.loads(text)
        if not isinstance(data, dict):
            raise ValueError(f"Invalid policy file: {stem} must contain a mapping")
        return HeuristicPolicy(
            name=data.get("name", stem),
            patterns=data.get("patterns"),
            keywords=data.get("keywords"),
            extra_keywords=list(data.get("extra_keywords") or []),
            unit_tokens=data.get("unit_tokens"),
            amount_pattern=data.get("amount_pattern"),
            row_tolerance=float(data.get("row_tolerance", DEFAULT_ROW_TOLERANCE)),
            metadata=data.get("metadata", {}),
        )


def find_builtin_policy(name: str) -> Optional[Traversable]:
    """Locate a packaged builtin policy by name."""
    ref = resources.files("salarymask.data").joinpath("policies", f"{name}.yaml")
    if ref.is_file():
        return ref
    return None


def load_policy(name_or_path: Optional[str]) -> HeuristicPolicy:
    """Resolve a policy from a file path or builtin name; ``None`` means defaults."""
    if not name_or_path:
        return HeuristicPolicy()
    path = Path(name_or_path)
    if path.exists():
        return HeuristicPolicy.from_file(path)
    found = find_builtin_policy(name_or_path)
    if found is None:
        raise FileNotFoundError(f"Unknown policy: {name_or_path}")
    return HeuristicPolicy.from_file(found)


__all__ = ["HeuristicPolicy", "find_builtin_policy", "load_policy"]
