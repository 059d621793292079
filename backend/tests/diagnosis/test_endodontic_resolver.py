import pytest

from dental_dx.services.diagnosis.endodontic import (
    Urgency,
    apply_abscess_findings,
    assess_endodontic,
    confirmation_message,
    resolve_electricity,
    resolve_endodontic,
    resolve_heat,
    single_signal_diagnosis,
)
from dental_dx.services.diagnosis.rule_table import RuleTable
from dental_dx.services.diagnosis.types import Diagnosis, EndodonticTestResult, InvalidObservationError


def _cold(result, detail=None):
    return EndodonticTestResult(result=result, detail=detail)


def test_lingering_cold_pain_is_irreversible_pulpitis(rule_store):
    diagnosis = resolve_endodontic(
        rule_store.endodontic, _cold("positive", "pain_lingering"), "not_painful", "not_painful"
    )
    assert diagnosis.code == "K04.02"


def test_negative_cold_with_painful_percussion(rule_store):
    diagnosis = resolve_endodontic(rule_store.endodontic, _cold("negative"), "painful", "not_painful")
    assert set(diagnosis.codes) == {"K04.1", "K04.5"}
    assert diagnosis.description == "Necrosis + chronic apical periodontitis"


@pytest.mark.parametrize(
    "cold, percussion, palpation, code",
    [
        (_cold("positive", "within_limits"), "not_painful", "unpleasant", "K04.4"),
        (_cold("positive", "Pain Stimulus"), "unpleasant", "painful", "K04.01+K04.7"),
        (_cold("Uncertain"), "painful", "painful", "K04.4+K04.7"),
        (_cold("N/A", "Existing RCT"), "not_painful", "not_painful", "Z98.810"),
        (_cold("not_applicable", "existing_rct"), "painful", "unpleasant", "M27.51+K04.4"),
        (_cold("not_applicable", "previously_initiated_therapy"), "painful", "painful", "K04.7"),
        (_cold("negative", "ignored"), "not_painful", "not_painful", "K04.1"),
    ],
)
def test_combined_matrix(rule_store, cold, percussion, palpation, code):
    assert resolve_endodontic(rule_store.endodontic, cold, percussion, palpation).code == code


@pytest.mark.parametrize(
    "cold, percussion, palpation",
    [
        (_cold("positive", "within_limits"), "not_painful", "not_painful"),
        (_cold("uncertain"), "not_painful", "not_painful"),
        (_cold("n/a", "prev initiated"), "not_painful", "not_painful"),
    ],
)
def test_rows_without_code_resolve_to_none(rule_store, cold, percussion, palpation):
    assert resolve_endodontic(rule_store.endodontic, cold, percussion, palpation) is None


def test_positive_cold_without_detail_is_inconclusive(rule_store):
    assert resolve_endodontic(rule_store.endodontic, _cold("positive"), "painful", "painful") is None


def test_missing_cold_test_resolves_nothing(rule_store):
    assert resolve_endodontic(rule_store.endodontic, None, "painful", "painful") is None


def test_missing_percussion_does_not_match_specific_rows(rule_store):
    assert resolve_endodontic(rule_store.endodontic, _cold("negative"), None, "painful") is None


def test_legacy_folded_detail_is_accepted(rule_store):
    diagnosis = resolve_endodontic(rule_store.endodontic, "pain-lingering", "not-painful", "not-painful")
    assert diagnosis.code == "K04.02"


@pytest.mark.parametrize(
    "cold, percussion, field",
    [
        (_cold("positive", "tingly"), "painful", "cold.detail"),
        (_cold("sideways"), "painful", "cold.result"),
        (_cold("not_applicable", "extraction"), "painful", "cold.detail"),
        (_cold("negative"), "very painful", "percussion"),
    ],
)
def test_invalid_inputs_name_the_field(rule_store, cold, percussion, field):
    with pytest.raises(InvalidObservationError) as excinfo:
        resolve_endodontic(rule_store.endodontic, cold, percussion, "painful")
    assert excinfo.value.field == field


def test_wildcard_rows_only_apply_after_specific_rows():
    table = RuleTable(
        "endodontic",
        [
            {"criteria": {"cold": "Negative", "percussion": "Any", "palpation": "Any"}, "code": "ANY", "description": "fallback"},
            {"criteria": {"cold": "Negative", "percussion": "Painful", "palpation": "Any"}, "code": "PERC", "description": "p"},
            {"criteria": {"cold": "Negative", "percussion": "Painful", "palpation": "Painful"}, "code": "BOTH", "description": "b"},
        ],
    )
    resolved = {
        (percussion, palpation): resolve_endodontic(table, _cold("negative"), percussion, palpation).code
        for percussion in ("not_painful", "unpleasant", "painful")
        for palpation in ("not_painful", "unpleasant", "painful")
    }
    assert resolved[("painful", "painful")] == "BOTH"
    assert resolved[("painful", "unpleasant")] == "PERC"
    assert resolved[("painful", "not_painful")] == "PERC"
    assert resolved[("unpleasant", "painful")] == "ANY"
    assert resolved[("not_painful", "not_painful")] == "ANY"


@pytest.mark.parametrize(
    "heat, code",
    [
        (EndodonticTestResult(result="negative"), "K04.1"),
        (EndodonticTestResult(result="positive", detail="pain_stimulus"), "K04.01"),
        (EndodonticTestResult(result="positive", detail="pain_lingering"), "K04.02"),
        (EndodonticTestResult(result="positive", detail="within_limits"), None),
        (EndodonticTestResult(result="positive"), None),
        (EndodonticTestResult(result="uncertain"), None),
        (None, None),
    ],
)
def test_heat_table(rule_store, heat, code):
    diagnosis = resolve_heat(rule_store.thermal, heat)
    assert (diagnosis.code if diagnosis else None) == code


def test_heat_rejects_unknown_detail(rule_store):
    with pytest.raises(InvalidObservationError) as excinfo:
        resolve_heat(rule_store.thermal, EndodonticTestResult(result="positive", detail="warm"))
    assert excinfo.value.field == "heat.detail"


@pytest.mark.parametrize(
    "reading, code",
    [
        (1, "K04.02"),
        (3, "K04.02"),
        (4, None),
        (6, None),
        (7, "K04.01"),
        (9, "K04.01"),
        (10, "K04.1"),
        ("8", "K04.01"),
        (None, None),
    ],
)
def test_electricity_buckets(reading, code):
    diagnosis = resolve_electricity(reading)
    assert (diagnosis.code if diagnosis else None) == code


@pytest.mark.parametrize("reading", [0, 11, -1, "high", 5.5, True])
def test_electricity_rejects_out_of_range(reading):
    with pytest.raises(InvalidObservationError) as excinfo:
        resolve_electricity(reading)
    assert excinfo.value.field == "electricity"


@pytest.mark.parametrize(
    "kind, result, detail, code",
    [
        ("cold", "positive", "pain-lingering", "K04.02"),
        ("heat", "pain-stimulus", None, "K04.01"),
        ("cold", "negative", None, "K04.1"),
        ("heat", "negative", None, "K04.1"),
        ("percussion", "negative", None, None),
        ("percussion", "painful", None, "K04.4"),
        ("palpation", "painful", None, "K04.4"),
        ("cold", "painful", None, None),
        ("palpation", "not_painful", None, None),
    ],
)
def test_single_signal_heuristic(kind, result, detail, code):
    diagnosis = single_signal_diagnosis(kind, result, detail)
    assert (diagnosis.code if diagnosis else None) == code


@pytest.mark.parametrize(
    "code, urgency",
    [
        ("K04.1+K04.7", Urgency.emergency),
        ("K04.02", Urgency.high),
        ("K04.1+K04.5", Urgency.high),
        ("K04.01", Urgency.medium),
        ("M27.51+K04.4", Urgency.medium),
        ("Z98.810", Urgency.low),
    ],
)
def test_urgency(code, urgency):
    assert assess_endodontic(Diagnosis(code=code)).urgency is urgency


def test_assessment_labels():
    assessment = assess_endodontic(Diagnosis(code="K04.02+K04.4"))
    assert assessment.codes == ("K04.02", "K04.4")
    assert assessment.pulp == "Irreversible pulpitis"
    assert assessment.periapical == "Symptomatic apical periodontitis"


def test_confirmation_messages():
    assert (
        confirmation_message(16, Diagnosis(code="K04.02+K04.4"))
        == "Tooth 16: Irreversible pulpitis with symptomatic apical periodontitis"
    )
    assert confirmation_message(21, None) == "Tooth 21: Normal pulp with normal apical tissues"
    assert confirmation_message(36, Diagnosis(code="K04.1")) == "Tooth 36: Pulp necrosis"
    assert confirmation_message(11, Diagnosis(code="K04.7")) == "Tooth 11: Normal pulp with acute apical abscess"


@pytest.mark.parametrize(
    "cold, percussion, palpation, findings, code",
    [
        (_cold("negative"), "painful", "not_painful", {"has_sinus_tract": True}, "K04.1+K04.6"),
        (_cold("positive", "pain_lingering"), "painful", "painful", {"has_swelling": True}, "K04.02+K04.7"),
        (_cold("positive", "within_limits"), "not_painful", "not_painful", {"has_sinus_tract": True}, "K04.6"),
        (_cold("negative"), "not_painful", "painful", {"has_swelling": True, "has_sinus_tract": True}, "K04.1+K04.6"),
        (_cold("negative"), "painful", "not_painful", {"has_swelling": True}, "K04.1+K04.5"),
        (None, "painful", "painful", {"has_swelling": True}, "K04.7"),
    ],
)
def test_swelling_and_sinus_tract_findings(rule_store, cold, percussion, palpation, findings, code):
    diagnosis = resolve_endodontic(rule_store.endodontic, cold, percussion, palpation, **findings)
    assert diagnosis.code == code


def test_abscess_findings_keep_pulp_description(rule_store):
    diagnosis = resolve_endodontic(
        rule_store.endodontic, _cold("negative"), "painful", "painful", has_swelling=True
    )
    assert diagnosis.code == "K04.1+K04.7"
    assert assess_endodontic(diagnosis).urgency is Urgency.emergency
    chronic = apply_abscess_findings(diagnosis, "painful", has_sinus_tract=True)
    assert chronic == Diagnosis(code="K04.1+K04.6", description="Pulp necrosis + chronic apical abscess")
    assert confirmation_message(36, chronic) == "Tooth 36: Pulp necrosis with chronic apical abscess"


def test_no_findings_leave_diagnosis_untouched():
    diagnosis = Diagnosis(code="K04.02+K04.4", description="Irreversible pulpitis + symptomatic apical perio")
    assert apply_abscess_findings(diagnosis, "painful") is diagnosis
    assert apply_abscess_findings(None, "unpleasant", has_swelling=True) is None
