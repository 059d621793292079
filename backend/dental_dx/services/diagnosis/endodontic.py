from __future__ import annotations

import enum
import logging

from pydantic import BaseModel, ConfigDict

from dental_dx.services.diagnosis.rule_table import RuleTable
from dental_dx.services.diagnosis.types import (
    NOT_APPLICABLE_REASONS,
    POSITIVE_DETAILS,
    Diagnosis,
    EndodonticTestResult,
    EndoTestKind,
    InvalidObservationError,
    normalize_label,
)


logger = logging.getLogger(__name__)

PULP_TEST_RESULTS = frozenset({"positive", "negative", "uncertain", "not_applicable"})
PERIAPICAL_TEST_RESULTS = frozenset({"", "not_painful", "unpleasant", "painful"})

IRREVERSIBLE_PULPITIS = Diagnosis(code="K04.02", description="Irreversible pulpitis")
REVERSIBLE_PULPITIS = Diagnosis(code="K04.01", description="Reversible pulpitis")
PULP_NECROSIS = Diagnosis(code="K04.1", description="Necrosis of pulp")
ACUTE_APICAL_PERIODONTITIS = Diagnosis(code="K04.4", description="Acute apical periodontitis")
CHRONIC_APICAL_ABSCESS = Diagnosis(code="K04.6", description="Chronic apical abscess")
ACUTE_APICAL_ABSCESS = Diagnosis(code="K04.7", description="Acute apical abscess")

PULP_LABELS = {
    "K04.01": "Reversible pulpitis",
    "K04.02": "Irreversible pulpitis",
    "K04.1": "Pulp necrosis",
    "M27.51": "Previously treated",
    "Z98.810": "Previously treated",
}
PERIAPICAL_LABELS = {
    "K04.4": "Symptomatic apical periodontitis",
    "K04.5": "Asymptomatic apical periodontitis",
    "K04.6": "Chronic apical abscess",
    "K04.7": "Acute apical abscess",
}

TestInput = EndodonticTestResult | str | None


class Urgency(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"
    emergency = "emergency"


class EndodonticAssessment(BaseModel):
    model_config = ConfigDict(frozen=True)

    codes: tuple[str, ...] = ()
    pulp: str | None = None
    periapical: str | None = None
    urgency: Urgency = Urgency.low


def _as_test_result(value: TestInput) -> EndodonticTestResult:
    if value is None:
        return EndodonticTestResult()
    if isinstance(value, EndodonticTestResult):
        return value
    return EndodonticTestResult(result=value)


def _pulp_result(field: str, value: TestInput) -> tuple[str, str]:
    test = _as_test_result(value)
    result = test.normalized_result
    detail = test.normalized_detail
    # Older callers fold the positive detail into the result itself.
    if result in POSITIVE_DETAILS and not detail:
        result, detail = "positive", result
    if result and result not in PULP_TEST_RESULTS:
        raise InvalidObservationError(f"{field}.result", f"unsupported result {test.result!r}")
    if result == "positive" and detail and detail not in POSITIVE_DETAILS:
        raise InvalidObservationError(f"{field}.detail", f"unsupported detail {test.detail!r}")
    if result == "not_applicable" and detail and detail not in NOT_APPLICABLE_REASONS:
        raise InvalidObservationError(f"{field}.detail", f"unsupported reason {test.detail!r}")
    if result in {"negative", "uncertain"}:
        detail = ""
    return result, detail


def _periapical_result(field: str, value: TestInput) -> str:
    result = _as_test_result(value).normalized_result
    if result not in PERIAPICAL_TEST_RESULTS:
        raise InvalidObservationError(field, f"unsupported result {value!r}")
    return result


def resolve_endodontic(
    table: RuleTable,
    cold: TestInput,
    percussion: TestInput,
    palpation: TestInput,
    *,
    has_swelling: bool = False,
    has_sinus_tract: bool = False,
) -> Diagnosis | None:
    cold_result, cold_detail = _pulp_result("cold", cold)
    percussion_result = _periapical_result("percussion", percussion)
    palpation_result = _periapical_result("palpation", palpation)
    findings = {"has_swelling": has_swelling, "has_sinus_tract": has_sinus_tract}
    if not cold_result:
        return apply_abscess_findings(None, palpation_result, **findings)
    if cold_result in {"positive", "not_applicable"} and not cold_detail:
        return apply_abscess_findings(None, palpation_result, **findings)

    row = table.first_match(
        {
            "cold": cold_result,
            "cold_detail": cold_detail,
            "percussion": percussion_result,
            "palpation": palpation_result,
        }
    )
    diagnosis = None
    if row is not None and row.has_code:
        diagnosis = Diagnosis(code=row.code, description=row.description)
    return apply_abscess_findings(diagnosis, palpation_result, **findings)


def apply_abscess_findings(
    diagnosis: Diagnosis | None,
    palpation: TestInput,
    *,
    has_swelling: bool = False,
    has_sinus_tract: bool = False,
) -> Diagnosis | None:
    """Replace the periapical part of ``diagnosis`` when an abscess is evident.

    A sinus tract means a chronic apical abscess (K04.6); swelling with painful
    palpation means an acute apical abscess (K04.7). The pulp code is kept.
    """
    if has_sinus_tract:
        abscess = CHRONIC_APICAL_ABSCESS
    elif has_swelling and _periapical_result("palpation", palpation) == "painful":
        abscess = ACUTE_APICAL_ABSCESS
    else:
        return diagnosis
    pulp_codes = [code for code in diagnosis.codes if code not in PERIAPICAL_LABELS] if diagnosis else []
    if not pulp_codes:
        return abscess
    pulp = PULP_LABELS.get(pulp_codes[0], pulp_codes[0])
    return Diagnosis(
        code="+".join([*pulp_codes, abscess.code]),
        description=f"{pulp} + {abscess.description.lower()}",
    )


def resolve_heat(table: RuleTable, heat: TestInput) -> Diagnosis | None:
    result, detail = _pulp_result("heat", heat)
    if not result or (result == "positive" and not detail):
        return None
    row = table.first_match({"result": result, "detail": detail})
    if row is None or not row.has_code:
        return None
    return Diagnosis(code=row.code, description=row.description)


def resolve_electricity(reading: int | str | None) -> Diagnosis | None:
    if reading is None:
        return None
    if isinstance(reading, bool):
        raise InvalidObservationError("electricity", f"unsupported reading {reading!r}")
    if isinstance(reading, str):
        text = reading.strip()
        if not text.isdigit():
            raise InvalidObservationError("electricity", f"unsupported reading {reading!r}")
        reading = int(text)
    if not isinstance(reading, int) or not 1 <= reading <= 10:
        raise InvalidObservationError("electricity", "reading must be an integer from 1 to 10")
    if reading <= 3:
        return IRREVERSIBLE_PULPITIS
    if reading <= 6:
        return None
    if reading <= 9:
        return REVERSIBLE_PULPITIS
    return PULP_NECROSIS


def single_signal_diagnosis(
    test_kind: EndoTestKind | str,
    result: str | None,
    detail: str | None = None,
) -> Diagnosis | None:
    kind = EndoTestKind(test_kind)
    result_label = normalize_label(result)
    detail_label = normalize_label(detail)
    if "pain_lingering" in {result_label, detail_label}:
        return IRREVERSIBLE_PULPITIS
    if "pain_stimulus" in {result_label, detail_label}:
        return REVERSIBLE_PULPITIS
    if result_label == "negative" and kind in {EndoTestKind.cold, EndoTestKind.heat}:
        return PULP_NECROSIS
    if result_label == "painful" and kind in {EndoTestKind.percussion, EndoTestKind.palpation}:
        return ACUTE_APICAL_PERIODONTITIS
    return None


def assess_endodontic(diagnosis: Diagnosis | None) -> EndodonticAssessment:
    if diagnosis is None:
        return EndodonticAssessment()
    codes = diagnosis.codes
    pulp = next((PULP_LABELS[code] for code in codes if code in PULP_LABELS), None)
    periapical = next((PERIAPICAL_LABELS[code] for code in codes if code in PERIAPICAL_LABELS), None)

    if "K04.7" in codes:
        urgency = Urgency.emergency
    elif "K04.02" in codes or "K04.1" in codes:
        urgency = Urgency.high
    elif "K04.01" in codes or "K04.4" in codes:
        urgency = Urgency.medium
    else:
        urgency = Urgency.low
    return EndodonticAssessment(codes=codes, pulp=pulp, periapical=periapical, urgency=urgency)


def confirmation_message(tooth_number: int | str, diagnosis: Diagnosis | None) -> str:
    """One-line summary shown to the clinician before the code is saved.

    A periapical finding without a pulp finding is phrased "Normal pulp with ..."
    so the message always reads as a sentence instead of starting with "with".
    """
    assessment = assess_endodontic(diagnosis)
    if assessment.pulp is None and assessment.periapical is None:
        return f"Tooth {tooth_number}: Normal pulp with normal apical tissues"
    pulp = assessment.pulp or "Normal pulp"
    if assessment.periapical is None:
        return f"Tooth {tooth_number}: {pulp}"
    return f"Tooth {tooth_number}: {pulp} with {assessment.periapical.lower()}"
