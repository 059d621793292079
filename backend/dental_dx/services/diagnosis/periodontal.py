from __future__ import annotations

import logging
import re
from collections.abc import Mapping

from pydantic import ValidationError

from dental_dx.services.diagnosis.rule_table import RuleTable, is_wildcard
from dental_dx.services.diagnosis.types import (
    Diagnosis,
    InvalidObservationError,
    PeriodontalAggregates,
    PeriodontalSiteMeasurement,
    SiteName,
    normalize_label,
    parse_gingival_margin,
    parse_probing_depth,
)


logger = logging.getLogger(__name__)

__all__ = [
    "aggregate_sites",
    "clinical_attachment_level",
    "count_bleeding_sites",
    "disease_extent",
    "parse_gingival_margin",
    "parse_probing_depth",
    "periodontitis_severity",
    "resolve_periodontal",
]

_YES = frozenset({"yes", "y", "true", "1"})
_NO = frozenset({"no", "n", "false", "0"})

# K05.2x/K05.3x periodontitis codes end in 1 (slight), 2 (moderate) or 3 (severe).
_PERIODONTITIS_RE = re.compile(r"^K05\.[23][12]([123])$")
_SEVERITY_BY_DIGIT = {"1": "slight", "2": "moderate", "3": "severe"}
SEVERITY_ORDER = ("slight", "moderate", "severe")
# Periodontitis on more than this share of charted teeth is generalized.
GENERALIZED_EXTENT_PERCENT = 30.0


def clinical_attachment_level(probing_depth: int, gingival_margin: int) -> int:
    if gingival_margin < 0:
        return probing_depth + abs(gingival_margin)
    return max(0, probing_depth - gingival_margin)


def _coerce_sites(
    sites: Mapping[SiteName | str, PeriodontalSiteMeasurement | Mapping[str, object]],
) -> dict[str, PeriodontalSiteMeasurement]:
    if not sites:
        raise InvalidObservationError("sites", "at least one site measurement is required")
    coerced: dict[str, PeriodontalSiteMeasurement] = {}
    for name, measurement in sites.items():
        key = name.value if isinstance(name, SiteName) else str(name)
        if isinstance(measurement, PeriodontalSiteMeasurement):
            coerced[key] = measurement
            continue
        try:
            coerced[key] = PeriodontalSiteMeasurement.model_validate(measurement)
        except ValidationError as exc:
            missing = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
            raise InvalidObservationError(
                f"sites.{key}", f"invalid measurement ({', '.join(missing)})"
            ) from exc
    return coerced


def aggregate_sites(
    sites: Mapping[SiteName | str, PeriodontalSiteMeasurement | Mapping[str, object]],
) -> PeriodontalAggregates:
    measurements = _coerce_sites(sites)
    site_cal = {
        key: clinical_attachment_level(item.probing_depth, item.gingival_margin)
        for key, item in measurements.items()
    }
    values = list(measurements.values())
    return PeriodontalAggregates(
        max_probing_depth=max(item.probing_depth for item in values),
        min_gingival_margin=min(item.gingival_margin for item in values),
        max_cal=max(site_cal.values()),
        any_bleeding=any(item.bleeding for item in values),
        any_plaque=any(item.plaque for item in values),
        any_pus=any(item.pus for item in values),
        any_tartar=any(item.tartar for item in values),
        site_cal=site_cal,
    )


def _yes_no(expected: str, observed: object) -> bool:
    if is_wildcard(expected):
        return True
    label = normalize_label(expected)
    if label in _YES:
        return bool(observed)
    if label in _NO:
        return not bool(observed)
    return False


def resolve_periodontal(
    table: RuleTable,
    sites: Mapping[SiteName | str, PeriodontalSiteMeasurement | Mapping[str, object]],
    patient_age: int,
    percent_teeth_affected: float,
) -> Diagnosis | None:
    aggregates = aggregate_sites(sites)
    return resolve_periodontal_aggregates(table, aggregates, patient_age, percent_teeth_affected)


def resolve_periodontal_aggregates(
    table: RuleTable,
    aggregates: PeriodontalAggregates,
    patient_age: int,
    percent_teeth_affected: float,
) -> Diagnosis | None:
    row = table.first_match(
        {
            "probing_depth": aggregates.max_probing_depth,
            "cal": aggregates.max_cal,
            "bop": aggregates.any_bleeding,
            "plaque": aggregates.any_plaque,
            "age": patient_age,
            "teeth_percent": percent_teeth_affected,
        },
        predicates={"bop": _yes_no, "plaque": _yes_no},
    )
    logger.debug(
        "Periodontal rule lookup",
        extra={
            "max_probing_depth": aggregates.max_probing_depth,
            "max_cal": aggregates.max_cal,
            "matched_code": row.code if row is not None else None,
        },
    )
    if row is None or not row.has_code:
        return None
    return Diagnosis(code=row.code, description=row.description)


def periodontitis_severity(code: str | Diagnosis | None) -> str | None:
    if code is None:
        return None
    if isinstance(code, Diagnosis):
        code = code.code
    match = _PERIODONTITIS_RE.match(code.strip().upper())
    if not match:
        return None
    return _SEVERITY_BY_DIGIT[match.group(1)]



def count_bleeding_sites(
    sites: Mapping[SiteName | str, PeriodontalSiteMeasurement | Mapping[str, object]],
) -> int:
    return sum(1 for item in _coerce_sites(sites).values() if item.bleeding)


def disease_extent(percent_teeth_affected: float) -> str:
    return "generalized" if percent_teeth_affected > GENERALIZED_EXTENT_PERCENT else "localized"
