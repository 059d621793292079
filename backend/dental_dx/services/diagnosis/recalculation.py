from __future__ import annotations

import logging
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from dental_dx.services.diagnosis.endodontic import (
    resolve_electricity,
    resolve_endodontic,
    resolve_heat,
    single_signal_diagnosis,
)
from dental_dx.services.diagnosis.rule_store import RuleTableStore
from dental_dx.services.diagnosis.types import Diagnosis, EndodonticTestResult, EndoTestKind


logger = logging.getLogger(__name__)

COMBINED_TESTS = frozenset({EndoTestKind.cold, EndoTestKind.percussion, EndoTestKind.palpation})


class EndodonticEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    tooth_number: int
    test_kind: EndoTestKind
    result: str | None = None
    detail: str | None = None
    reading: int | None = None
    code: str | None = None
    description: str | None = None

    @property
    def test_result(self) -> EndodonticTestResult:
        return EndodonticTestResult(result=self.result, detail=self.detail)

    def with_diagnosis(self, diagnosis: Diagnosis | None) -> EndodonticEntry:
        if diagnosis is None:
            return self.model_copy(update={"code": None, "description": None})
        return self.model_copy(update={"code": diagnosis.code, "description": diagnosis.description})


def apply_endodontic_update(
    entries: Iterable[EndodonticEntry],
    *,
    tooth_number: int,
    test_kind: EndoTestKind | str,
    result: str | None = None,
    detail: str | None = None,
    reading: int | None = None,
    store: RuleTableStore,
) -> list[EndodonticEntry]:
    """Record one pulp/periapical test and recompute the affected diagnoses.

    Cold, percussion and palpation are re-resolved together against the
    combined table whenever a cold entry exists; a combined match is written
    to every entry of the tooth. Without one, only the updated entry gets the
    single-signal diagnosis. Heat and electricity only ever touch their own
    entry. The input sequence is not modified.
    """
    kind = EndoTestKind(test_kind)
    updated = list(entries)
    index = next(
        (
            position
            for position, entry in enumerate(updated)
            if entry.tooth_number == tooth_number and entry.test_kind is kind
        ),
        None,
    )
    changes = {"result": result, "detail": detail, "reading": reading}
    if index is None:
        updated.append(EndodonticEntry(tooth_number=tooth_number, test_kind=kind, **changes))
        index = len(updated) - 1
    else:
        updated[index] = updated[index].model_copy(update=changes)

    if kind in COMBINED_TESTS:
        tooth_tests = {entry.test_kind: entry for entry in updated if entry.tooth_number == tooth_number}
        cold = tooth_tests.get(EndoTestKind.cold)
        if cold is not None:
            percussion = tooth_tests.get(EndoTestKind.percussion)
            palpation = tooth_tests.get(EndoTestKind.palpation)
            combined = resolve_endodontic(
                store.endodontic,
                cold.test_result,
                percussion.test_result if percussion else None,
                palpation.test_result if palpation else None,
            )
            if combined is not None:
                logger.info(
                    "Endodontic combined diagnosis applied",
                    extra={"tooth_number": tooth_number, "test_kind": kind.value, "code": combined.code},
                )
                return [
                    entry.with_diagnosis(combined) if entry.tooth_number == tooth_number else entry
                    for entry in updated
                ]
        diagnosis = single_signal_diagnosis(kind, result, detail)
    elif kind is EndoTestKind.heat:
        diagnosis = resolve_heat(store.thermal, EndodonticTestResult(result=result, detail=detail))
        if diagnosis is None:
            diagnosis = single_signal_diagnosis(kind, result, detail)
    else:
        diagnosis = resolve_electricity(reading if reading is not None else result)

    logger.debug(
        "Endodontic single test diagnosis",
        extra={
            "tooth_number": tooth_number,
            "test_kind": kind.value,
            "code": diagnosis.code if diagnosis else None,
        },
    )
    updated[index] = updated[index].with_diagnosis(diagnosis)
    return updated
