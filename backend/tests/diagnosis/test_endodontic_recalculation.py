import pytest

from dental_dx.services.diagnosis.recalculation import EndodonticEntry, apply_endodontic_update
from dental_dx.services.diagnosis.types import EndoTestKind, InvalidObservationError


def _record(rule_store, entries, tooth_number, test_kind, **values):
    return apply_endodontic_update(
        entries, tooth_number=tooth_number, test_kind=test_kind, store=rule_store, **values
    )


def _codes(entries, tooth_number):
    return {entry.test_kind.value: entry.code for entry in entries if entry.tooth_number == tooth_number}


def test_cold_alone_uses_single_signal_heuristic(rule_store):
    entries = _record(rule_store, [], 16, "cold", result="positive", detail="pain_lingering")
    assert len(entries) == 1
    assert entries[0].test_kind is EndoTestKind.cold
    assert entries[0].code == "K04.02"
    assert entries[0].description == "Irreversible pulpitis"


def test_full_combination_is_written_to_every_entry(rule_store):
    entries = _record(rule_store, [], 16, "cold", result="positive", detail="pain_lingering")
    entries = _record(rule_store, entries, 16, "percussion", result="not_painful")
    assert _codes(entries, 16) == {"cold": "K04.02", "percussion": None}

    entries = _record(rule_store, entries, 16, "palpation", result="not_painful")
    assert _codes(entries, 16) == {"cold": "K04.02", "percussion": "K04.02", "palpation": "K04.02"}


def test_combined_match_overwrites_other_tests_of_the_tooth(rule_store):
    entries = _record(rule_store, [], 36, "heat", result="positive", detail="pain_stimulus")
    entries = _record(rule_store, entries, 36, "palpation", result="not_painful")
    entries = _record(rule_store, entries, 36, "percussion", result="painful")
    entries = _record(rule_store, entries, 36, "cold", result="negative")
    assert set(_codes(entries, 36).values()) == {"K04.1+K04.5"}


def test_other_teeth_are_untouched(rule_store):
    other = EndodonticEntry(tooth_number=21, test_kind="cold", result="negative", code="K04.1")
    entries = _record(rule_store, [other], 16, "cold", result="negative")
    entries = _record(rule_store, entries, 16, "percussion", result="painful")
    entries = _record(rule_store, entries, 16, "palpation", result="painful")
    assert entries[0] is other
    assert _codes(entries, 16)["cold"] == "K04.1+K04.7"


def test_input_entries_are_not_modified(rule_store):
    original = [EndodonticEntry(tooth_number=11, test_kind="cold", result="uncertain")]
    snapshot = list(original)
    updated = _record(rule_store, original, 11, "cold", result="negative")
    assert original == snapshot
    assert original[0].code is None
    assert len(updated) == 1
    assert updated[0].result == "negative"
    assert updated[0].code == "K04.1"


def test_percussion_without_cold_only_updates_itself(rule_store):
    entries = _record(rule_store, [], 46, "palpation", result="not_painful")
    entries = _record(rule_store, entries, 46, "percussion", result="painful")
    assert _codes(entries, 46) == {"palpation": None, "percussion": "K04.4"}


@pytest.mark.parametrize(
    "result, detail, code",
    [
        ("negative", None, "K04.1"),
        ("positive", "pain_stimulus", "K04.01"),
        ("pain_lingering", None, "K04.02"),
        ("uncertain", None, None),
        ("positive", "within_limits", None),
    ],
)
def test_heat_uses_thermal_table(rule_store, result, detail, code):
    entries = _record(rule_store, [], 26, "heat", result=result, detail=detail)
    assert entries[0].code == code


@pytest.mark.parametrize(
    "reading, result, code",
    [(2, None, "K04.02"), (5, None, None), (None, "8", "K04.01"), (10, None, "K04.1")],
)
def test_electricity_uses_reading_buckets(rule_store, reading, result, code):
    entries = _record(rule_store, [], 14, "electricity", reading=reading, result=result)
    assert entries[0].code == code


def test_electricity_out_of_range_is_rejected(rule_store):
    with pytest.raises(InvalidObservationError):
        _record(rule_store, [], 14, "electricity", reading=12)


def test_repeat_update_replaces_entry(rule_store):
    entries = _record(rule_store, [], 13, "heat", result="negative")
    entries = _record(rule_store, entries, 13, "heat", result="positive", detail="within_limits")
    assert len(entries) == 1
    assert entries[0].code is None
    assert entries[0].description is None


def test_unknown_test_kind_is_rejected(rule_store):
    with pytest.raises(ValueError):
        _record(rule_store, [], 13, "ultrasound", result="negative")
