from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from pathlib import Path

from pydantic import ValidationError

from dental_dx.core.settings import Settings, settings
from dental_dx.services.diagnosis.rule_table import RuleIssue, RuleOrdering, RuleTable
from dental_dx.services.diagnosis.types import RuleFamily


logger = logging.getLogger(__name__)

BUNDLED_TABLES_DIR = Path(__file__).resolve().parent / "tables"

_ROW_FIELDS = ("code", "description", "priority")

RowSource = Callable[[], Mapping[RuleFamily, tuple[str, list[Mapping[str, object]]]]]


class RuleTableError(RuntimeError):
    pass


def _row_payload(raw: Mapping[str, object]) -> dict[str, object]:
    if "criteria" in raw:
        return dict(raw)
    payload: dict[str, object] = {key: raw[key] for key in _ROW_FIELDS if key in raw}
    payload["criteria"] = {key: value for key, value in raw.items() if key not in _ROW_FIELDS}
    return payload


def _load_json(path: Path) -> list[dict]:
    if not path.is_file():
        raise RuleTableError(f"{path} does not exist.")
    raw = path.read_text(encoding="utf-8")
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise RuleTableError(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise RuleTableError(f"{path} must contain a JSON list.")
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise RuleTableError(f"{path} row {index} must be a JSON object.")
    return data


class RuleTableStore:
    """Holds one ranked ``RuleTable`` per family.

    Tables are built completely before being published with a single
    assignment, so readers never lock. ``reload`` and ``clear`` are serialized.
    """

    def __init__(
        self,
        row_source: RowSource,
        *,
        ordering: RuleOrdering = "specificity",
        strict: bool = False,
        source_label: str = "<rows>",
    ) -> None:
        self._row_source = row_source
        self.ordering = ordering
        self.strict = strict
        self.source_label = source_label
        self._lock = threading.Lock()
        self._tables: dict[RuleFamily, RuleTable] | None = None
        self._issues: list[RuleIssue] = []

    @classmethod
    def from_rows(
        cls,
        rows_by_family: Mapping[RuleFamily | str, Iterable[Mapping[str, object]]],
        *,
        ordering: RuleOrdering = "specificity",
        strict: bool = False,
    ) -> RuleTableStore:
        materialized = {
            RuleFamily(family): ("<rows>", [dict(row) for row in rows])
            for family, rows in rows_by_family.items()
        }
        return cls(lambda: materialized, ordering=ordering, strict=strict)

    @classmethod
    def from_directory(
        cls,
        directory: Path | None = None,
        *,
        ordering: RuleOrdering = "specificity",
        strict: bool = False,
    ) -> RuleTableStore:
        base_path = BUNDLED_TABLES_DIR if directory is None else Path(directory)

        def read_rows() -> dict[RuleFamily, tuple[str, list[Mapping[str, object]]]]:
            out: dict[RuleFamily, tuple[str, list[Mapping[str, object]]]] = {}
            for family in RuleFamily:
                path = base_path / f"{family.value}.json"
                out[family] = (str(path), _load_json(path))
            return out

        return cls(read_rows, ordering=ordering, strict=strict, source_label=str(base_path))

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> RuleTableStore:
        config = config or settings
        return cls.from_directory(
            config.rules_dir,
            ordering=config.rule_ordering,
            strict=config.strict_rule_tables,
        )

    def table(self, family: RuleFamily | str) -> RuleTable:
        tables = self._tables
        if tables is None:
            with self._lock:
                if self._tables is None:
                    self._tables = self._build()
                tables = self._tables
        family = RuleFamily(family)
        if family not in tables:
            raise RuleTableError(f"No {family.value} rule table loaded from {self.source_label}.")
        return tables[family]

    @property
    def caries(self) -> RuleTable:
        return self.table(RuleFamily.caries)

    @property
    def endodontic(self) -> RuleTable:
        return self.table(RuleFamily.endodontic)

    @property
    def thermal(self) -> RuleTable:
        return self.table(RuleFamily.thermal)

    @property
    def periodontal(self) -> RuleTable:
        return self.table(RuleFamily.periodontal)

    @property
    def is_loaded(self) -> bool:
        return self._tables is not None

    @property
    def issues(self) -> list[RuleIssue]:
        return list(self._issues)

    def reload(self) -> None:
        with self._lock:
            self._tables = self._build()

    def clear(self) -> None:
        with self._lock:
            self._tables = None
            self._issues = []

    def _build(self) -> dict[RuleFamily, RuleTable]:
        tables: dict[RuleFamily, RuleTable] = {}
        issues: list[RuleIssue] = []
        for family, (origin, rows) in self._row_source().items():
            try:
                table = RuleTable(
                    family, [_row_payload(row) for row in rows], ordering=self.ordering
                )
            except ValidationError as exc:
                raise RuleTableError(f"{origin} has an invalid {family.value} row: {exc}") from exc
            family_issues = table.validate()
            for issue in family_issues:
                logger.warning(
                    "Rule table issue",
                    extra={
                        "family": issue.family.value,
                        "row_index": issue.row_index,
                        "criterion": issue.criterion,
                        "issue": issue.message,
                        "origin": origin,
                    },
                )
            if family_issues and self.strict:
                summary = "; ".join(
                    f"row {issue.row_index}: {issue.message}" for issue in family_issues
                )
                raise RuleTableError(f"{origin} failed validation: {summary}")
            issues.extend(family_issues)
            tables[family] = table
        logger.info(
            "Rule tables loaded",
            extra={
                "source": self.source_label,
                "ordering": self.ordering,
                "row_counts": {family.value: len(table) for family, table in tables.items()},
                "issue_count": len(issues),
            },
        )
        self._issues = issues
        return tables
