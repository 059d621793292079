from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from functools import lru_cache


class RangeKind(str, enum.Enum):
    any = "any"
    equal = "equal"
    greater = "greater"
    greater_equal = "greater_equal"
    less = "less"
    less_equal = "less_equal"
    between = "between"
    invalid = "invalid"


_NUMBER = r"[+-]?\d+(?:\.\d+)?"
_UNSIGNED = r"\d+(?:\.\d+)?"

_LITERAL_RE = re.compile(rf"^{_NUMBER}$")
_COMPARISON_RE = re.compile(rf"^(>=|<=|>|<)\s*({_NUMBER})$")
_TO_RE = re.compile(rf"^({_NUMBER})\s+to\s+({_NUMBER})$", re.IGNORECASE)
_AT_LEAST_RE = re.compile(rf"^({_NUMBER})\s*\+$")
_HYPHEN_RE = re.compile(rf"^({_UNSIGNED})\s*-\s*({_UNSIGNED})$")
# Anything with a hyphen after a signed leading number reads two ways, e.g. "-1-2".
_AMBIGUOUS_HYPHEN_RE = re.compile(rf"^-\s*{_UNSIGNED}\s*-\s*-?\s*{_UNSIGNED}$|^{_UNSIGNED}\s*-\s*-\s*{_UNSIGNED}$")

_COMPARISON_KINDS = {
    ">": RangeKind.greater,
    ">=": RangeKind.greater_equal,
    "<": RangeKind.less,
    "<=": RangeKind.less_equal,
}


@dataclass(frozen=True)
class RangeExpression:
    kind: RangeKind
    low: float | None = None
    high: float | None = None
    source: str = ""

    @property
    def is_wildcard(self) -> bool:
        return self.kind is RangeKind.any

    @property
    def is_valid(self) -> bool:
        return self.kind is not RangeKind.invalid

    def matches(self, value: float | int | None) -> bool:
        if self.kind is RangeKind.any:
            return True
        if value is None or self.kind is RangeKind.invalid:
            return False
        if self.kind is RangeKind.equal:
            return value == self.low
        if self.kind is RangeKind.greater:
            return value > self.low
        if self.kind is RangeKind.greater_equal:
            return value >= self.low
        if self.kind is RangeKind.less:
            return value < self.high
        if self.kind is RangeKind.less_equal:
            return value <= self.high
        return self.low <= value <= self.high


def _clean(text: str) -> str:
    cleaned = text.strip().replace("≥", ">=").replace("≤", "<=").replace("−", "-")
    if cleaned.endswith("%"):
        cleaned = cleaned[:-1].rstrip()
    return cleaned


@lru_cache(maxsize=1024)
def parse_range(text: str | None) -> RangeExpression:
    source = "" if text is None else str(text)
    cleaned = _clean(source)
    if not cleaned or cleaned.lower() == "any":
        return RangeExpression(RangeKind.any, source=source)

    if _LITERAL_RE.match(cleaned):
        number = float(cleaned)
        return RangeExpression(RangeKind.equal, low=number, high=number, source=source)

    match = _COMPARISON_RE.match(cleaned)
    if match:
        kind = _COMPARISON_KINDS[match.group(1)]
        number = float(match.group(2))
        if kind in {RangeKind.greater, RangeKind.greater_equal}:
            return RangeExpression(kind, low=number, source=source)
        return RangeExpression(kind, high=number, source=source)

    match = _TO_RE.match(cleaned)
    if match:
        first, second = float(match.group(1)), float(match.group(2))
        return RangeExpression(
            RangeKind.between, low=min(first, second), high=max(first, second), source=source
        )

    match = _AT_LEAST_RE.match(cleaned)
    if match:
        return RangeExpression(RangeKind.greater_equal, low=float(match.group(1)), source=source)

    match = _HYPHEN_RE.match(cleaned)
    if match:
        low, high = float(match.group(1)), float(match.group(2))
        if low <= high:
            return RangeExpression(RangeKind.between, low=low, high=high, source=source)

    return RangeExpression(RangeKind.invalid, source=source)


def lint_range(text: str | None) -> str | None:
    """Return a curator-facing complaint about ``text``, or ``None`` when it is usable."""
    source = "" if text is None else str(text)
    cleaned = _clean(source)
    if _AMBIGUOUS_HYPHEN_RE.match(cleaned):
        return f"Ambiguous range {source!r}: write negative bounds as 'A to B'."
    expression = parse_range(source)
    if expression.is_valid:
        return None
    match = _HYPHEN_RE.match(cleaned)
    if match:
        return f"Descending range {source!r}: lower bound must come first."
    return f"Unrecognised range {source!r}; it will never match."
