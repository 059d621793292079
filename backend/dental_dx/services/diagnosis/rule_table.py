from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator

from dental_dx.services.diagnosis.range_expression import lint_range, parse_range
from dental_dx.services.diagnosis.types import RuleFamily, normalize_label


logger = logging.getLogger(__name__)

RuleOrdering = Literal["specificity", "declaration"]
CriterionPredicate = Callable[[str, object], bool]

FAMILY_CRITERIA: dict[RuleFamily, tuple[str, ...]] = {
    RuleFamily.caries: ("aspect", "depth", "cavitation", "classification"),
    RuleFamily.endodontic: ("cold", "cold_detail", "percussion", "palpation"),
    RuleFamily.thermal: ("result", "detail"),
    RuleFamily.periodontal: (
        "probing_depth",
        "gingival_margin",
        "cal",
        "bop",
        "plaque",
        "age",
        "teeth_percent",
    ),
}

RANGE_CRITERIA: dict[RuleFamily, frozenset[str]] = {
    RuleFamily.periodontal: frozenset(
        {"probing_depth", "gingival_margin", "cal", "age", "teeth_percent"}
    ),
}

LABEL_CHOICES: dict[RuleFamily, dict[str, frozenset[str]]] = {
    RuleFamily.periodontal: {
        "bop": frozenset({"yes", "no"}),
        "plaque": frozenset({"yes", "no"}),
    },
}

NO_CODE_VALUES = frozenset({"", "-"})

_NAME_SEPARATORS_RE = re.compile(r"[\s\-]+")


def criterion_name(name: str) -> str:
    return _NAME_SEPARATORS_RE.sub("_", str(name).strip()).lower()


def is_wildcard(value: object) -> bool:
    return normalize_label(value) in {"", "any"}


class RuleRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    criteria: dict[str, str]
    code: str = ""
    description: str = ""
    priority: int | None = None

    @field_validator("criteria", mode="before")
    @classmethod
    def _coerce_criteria(cls, value):
        if not isinstance(value, Mapping):
            return value
        coerced: dict[str, str] = {}
        for key, item in value.items():
            coerced[criterion_name(key)] = "" if item is None else str(item).strip()
        return coerced

    @field_validator("code", "description", mode="before")
    @classmethod
    def _strip_text(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @property
    def has_code(self) -> bool:
        return self.code not in NO_CODE_VALUES

    @property
    def specificity(self) -> int:
        return sum(1 for value in self.criteria.values() if not is_wildcard(value))


class RuleIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    family: RuleFamily
    row_index: int
    criterion: str | None
    message: str


class RuleTable:
    """Immutable, ranked set of rule rows for one diagnostic family.

    Rows are ranked once here. Explicit ``priority`` wins (lower first), then
    specificity (more concrete criteria first), then declaration order. With
    ``ordering="declaration"`` the source order is kept as-is.
    """

    def __init__(
        self,
        family: RuleFamily | str,
        rows: Iterable[RuleRow | Mapping[str, object]],
        *,
        ordering: RuleOrdering = "specificity",
    ) -> None:
        self.family = RuleFamily(family)
        self.ordering = ordering
        self.rows: tuple[RuleRow, ...] = tuple(
            row if isinstance(row, RuleRow) else RuleRow.model_validate(row) for row in rows
        )
        self._ranked = self._rank(self.rows, ordering)

    @staticmethod
    def _rank(rows: tuple[RuleRow, ...], ordering: RuleOrdering) -> tuple[RuleRow, ...]:
        if ordering == "declaration":
            return rows
        if ordering != "specificity":
            raise ValueError(f"Unsupported rule ordering: {ordering}")
        indexed = list(enumerate(rows))
        indexed.sort(
            key=lambda pair: (
                0 if pair[1].priority is not None else 1,
                pair[1].priority if pair[1].priority is not None else 0,
                -pair[1].specificity,
                pair[0],
            )
        )
        return tuple(row for _, row in indexed)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[RuleRow]:
        return iter(self._ranked)

    @property
    def ranked_rows(self) -> tuple[RuleRow, ...]:
        return self._ranked

    @property
    def range_criteria(self) -> frozenset[str]:
        return RANGE_CRITERIA.get(self.family, frozenset())

    def first_match(
        self,
        observed: Mapping[str, object],
        *,
        ranges: Iterable[str] = (),
        predicates: Mapping[str, CriterionPredicate] | None = None,
    ) -> RuleRow | None:
        range_names = self.range_criteria | {criterion_name(name) for name in ranges}
        checks = {criterion_name(name): value for name, value in observed.items()}
        custom = {criterion_name(name): check for name, check in (predicates or {}).items()}
        for row in self._ranked:
            if all(
                _criterion_satisfied(
                    row.criteria.get(name, ""), value, name in range_names, custom.get(name)
                )
                for name, value in checks.items()
            ):
                return row
        return None

    def validate(self) -> list[RuleIssue]:
        issues: list[RuleIssue] = []
        known = set(FAMILY_CRITERIA.get(self.family, ()))
        choices = LABEL_CHOICES.get(self.family, {})
        seen: dict[tuple[tuple[str, str], ...], int] = {}
        for index, row in enumerate(self.rows):
            for name, value in row.criteria.items():
                if name not in known:
                    issues.append(
                        RuleIssue(
                            family=self.family,
                            row_index=index,
                            criterion=name,
                            message=f"Unknown criterion {name!r} for {self.family.value} rules.",
                        )
                    )
                    continue
                if name in self.range_criteria:
                    problem = lint_range(value)
                    if problem:
                        issues.append(
                            RuleIssue(
                                family=self.family, row_index=index, criterion=name, message=problem
                            )
                        )
                elif name in choices and not is_wildcard(value):
                    if normalize_label(value) not in choices[name]:
                        allowed = ", ".join(sorted(choices[name]))
                        issues.append(
                            RuleIssue(
                                family=self.family,
                                row_index=index,
                                criterion=name,
                                message=f"Unsupported value {value!r}; expected one of: {allowed}, any.",
                            )
                        )
            if not row.description:
                issues.append(
                    RuleIssue(
                        family=self.family,
                        row_index=index,
                        criterion=None,
                        message="Row has no description.",
                    )
                )
            signature = tuple(
                sorted(
                    (name, value if name in self.range_criteria else normalize_label(value))
                    for name, value in row.criteria.items()
                    if not is_wildcard(value)
                )
            )
            if signature in seen and self.rows[seen[signature]].code != row.code:
                issues.append(
                    RuleIssue(
                        family=self.family,
                        row_index=index,
                        criterion=None,
                        message=(
                            f"Same criteria as row {seen[signature]} but a different code; "
                            "only one of them can ever match."
                        ),
                    )
                )
            seen.setdefault(signature, index)
        return issues


def _criterion_satisfied(
    expected: str,
    observed: object,
    is_range: bool,
    predicate: CriterionPredicate | None,
) -> bool:
    # Predicates also see wildcard cells so a caller can refuse them.
    if predicate is not None:
        return predicate(expected, observed)
    if is_wildcard(expected):
        return True
    if is_range:
        return parse_range(expected).matches(_as_number(observed))
    return normalize_label(expected) == normalize_label(observed)


def _as_number(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
