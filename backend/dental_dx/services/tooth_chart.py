from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone

from dental_dx.core.settings import Settings, settings
from dental_dx.schemas.tooth_chart import (
    PathologyCreate,
    PathologyOut,
    PeriodontalOut,
    PeriodontalSummaryOut,
    RestorationCreate,
    RestorationOut,
    ToothStatusOut,
)
from dental_dx.services.diagnosis.caries import resolve_caries
from dental_dx.services.diagnosis.periodontal import (
    SEVERITY_ORDER,
    aggregate_sites,
    count_bleeding_sites,
    disease_extent,
    periodontitis_severity,
    resolve_periodontal_aggregates,
)
from dental_dx.services.diagnosis.recalculation import EndodonticEntry, apply_endodontic_update
from dental_dx.services.diagnosis.rule_store import RuleTableStore
from dental_dx.services.diagnosis.types import (
    CariesClass,
    Diagnosis,
    EndoTestKind,
    PeriodontalAggregates,
    PeriodontalObservation,
)


logger = logging.getLogger(__name__)

SURFACE_AREAS: dict[int, tuple[str, str]] = {
    1: ("cervical_buccal", "Cervical Buccal"),
    2: ("buccal", "Buccal"),
    3: ("mesial", "Mesial"),
    4: ("incisal", "Incisal/Occlusal"),
    5: ("distal", "Distal"),
    6: ("palatal", "Palatal/Lingual"),
    7: ("cervical_palatal", "Cervical Palatal"),
    8: ("class4_mesial", "Class 4 Mesial"),
    9: ("class4_distal", "Class 4 Distal"),
    10: ("buccal_surface", "Buccal Surface"),
    11: ("palatal_surface", "Palatal Surface"),
}

OCCLUSAL_SURFACE = 4
# Single-surface lesions whose aspect has its own caries rows.
_SURFACE_ASPECTS = {2: "Buccal", 3: "Mesial", 5: "Distal", 6: "Palatal"}

FRACTURE = Diagnosis(code="S02.5", description="Fracture of tooth")
ABRASION = Diagnosis(code="K03.1", description="Abrasion of teeth")
EROSION = Diagnosis(code="K03.2", description="Erosion of teeth")
DISCOLORATION = Diagnosis(code="K03.7", description="Posteruptive color changes")
FAILED_RESTORATION = Diagnosis(code="K08.53", description="Fractured dental restorative material")
BRIDGE_ABUTMENT = Diagnosis(code="K08.1", description="Bridge support")
BRIDGE_PONTIC = Diagnosis(code="K08.4", description="Replaces missing tooth")


def caries_aspect(surfaces: Iterable[int]) -> str:
    selected = set(surfaces)
    unknown = selected - SURFACE_AREAS.keys()
    if unknown:
        raise ValueError(f"Unknown surface numbers: {sorted(unknown)}")
    if OCCLUSAL_SURFACE in selected:
        return "Occlusal"
    if len(selected) == 1:
        return _SURFACE_ASPECTS.get(next(iter(selected)), "any")
    return "any"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ToothChart:
    """In-memory chart of one patient's findings, keeping codes current as entries change."""

    def __init__(self, store: RuleTableStore, *, config: Settings | None = None) -> None:
        self.store = store
        self.config = config or settings
        self.pathologies: list[PathologyOut] = []
        self.restorations: list[RestorationOut] = []
        self.endodontics: list[EndodonticEntry] = []
        self.periodontal: dict[int, PeriodontalOut] = {}
        self.statuses: dict[int, ToothStatusOut] = {}

    def _pathology_diagnosis(self, entry: PathologyCreate) -> Diagnosis | None:
        if entry.type == "caries":
            if entry.depth is None or entry.cavitation is None:
                return None
            return resolve_caries(
                self.store.caries,
                caries_aspect(entry.surfaces),
                entry.depth,
                entry.cavitation,
                entry.classification or CariesClass.c1,
            )
        if entry.type == "fracture":
            return FRACTURE
        if entry.type == "tooth_wear":
            return ABRASION if (entry.wear_type or "").strip().lower() == "abrasion" else EROSION
        if entry.type == "discoloration":
            return DISCOLORATION
        return None

    def add_pathology(self, entry: PathologyCreate | Mapping[str, object]) -> PathologyOut:
        entry = entry if isinstance(entry, PathologyCreate) else PathologyCreate.model_validate(entry)
        payload = entry.model_dump()
        if not entry.code:
            diagnosis = self._pathology_diagnosis(entry)
            if diagnosis is not None:
                payload.update(code=diagnosis.code, description=diagnosis.description)
        created = PathologyOut(**payload, created_at=_now())
        self.pathologies.append(created)
        return created

    def remove_pathology(self, entry_id: str) -> bool:
        before = len(self.pathologies)
        self.pathologies = [item for item in self.pathologies if item.id != entry_id]
        return len(self.pathologies) != before

    def add_restoration(self, entry: RestorationCreate | Mapping[str, object]) -> RestorationOut:
        entry = entry if isinstance(entry, RestorationCreate) else RestorationCreate.model_validate(entry)
        payload = entry.model_dump()
        diagnosis: Diagnosis | None = None
        if not entry.code:
            if entry.quality == "Insufficient":
                diagnosis = FAILED_RESTORATION
            elif entry.type == "crown" and entry.crown_type == "Abutment":
                diagnosis = BRIDGE_ABUTMENT
            elif entry.type == "crown" and entry.crown_type == "Pontic":
                diagnosis = BRIDGE_PONTIC
        if diagnosis is not None:
            payload.update(code=diagnosis.code, description=diagnosis.description)
        created = RestorationOut(**payload, created_at=_now())
        self.restorations.append(created)
        return created

    def remove_restoration(self, entry_id: str) -> bool:
        before = len(self.restorations)
        self.restorations = [item for item in self.restorations if item.id != entry_id]
        return len(self.restorations) != before

    def update_endodontic(
        self,
        tooth_number: int,
        test_kind: EndoTestKind | str,
        result: str | None = None,
        detail: str | None = None,
        reading: int | None = None,
    ) -> list[EndodonticEntry]:
        self.endodontics = apply_endodontic_update(
            self.endodontics,
            tooth_number=tooth_number,
            test_kind=test_kind,
            result=result,
            detail=detail,
            reading=reading,
            store=self.store,
        )
        return self.tooth_endodontics(tooth_number)

    def update_periodontal(
        self,
        tooth_number: int,
        sites: Mapping[str, Mapping[str, object]],
        *,
        mobility: int = 0,
        patient_age: int | None = None,
        percent_teeth_affected: float | None = None,
    ) -> PeriodontalOut:
        observation = PeriodontalObservation(
            sites=sites,
            mobility=mobility,
            patient_age=patient_age,
            percent_teeth_affected=percent_teeth_affected,
        )
        aggregates = aggregate_sites(observation.sites)
        age = observation.patient_age
        if age is None:
            age = self.config.default_patient_age
        percent = observation.percent_teeth_affected
        if percent is None:
            percent = self._charted_percent_affected(tooth_number, aggregates, age)
        diagnosis = resolve_periodontal_aggregates(self.store.periodontal, aggregates, age, percent)
        entry = PeriodontalOut(
            tooth_number=tooth_number,
            sites={site: measurement.model_dump() for site, measurement in observation.sites.items()},
            mobility=observation.mobility,
            max_probing_depth=aggregates.max_probing_depth,
            max_cal=aggregates.max_cal,
            bleeding_sites=count_bleeding_sites(observation.sites),
            percent_teeth_affected=percent,
            code=diagnosis.code if diagnosis else None,
            description=diagnosis.description if diagnosis else None,
            updated_at=_now(),
        )
        self.periodontal[tooth_number] = entry
        logger.info(
            "Periodontal chart updated",
            extra={"tooth_number": tooth_number, "code": entry.code, "max_cal": entry.max_cal},
        )
        return entry

    def _charted_percent_affected(
        self, tooth_number: int, aggregates: PeriodontalAggregates, age: int
    ) -> float:
        """Share of charted teeth with periodontitis, counting ``tooth_number`` as re-probed.

        One charted tooth says nothing about the rest of the mouth, so the
        configured default applies until a second tooth has been charted.
        """
        default = self.config.default_percent_teeth_affected
        others = [entry for number, entry in self.periodontal.items() if number != tooth_number]
        if not others:
            return default
        # The age/extent split never decides whether a row is periodontitis.
        provisional = resolve_periodontal_aggregates(self.store.periodontal, aggregates, age, default)
        affected = sum(1 for entry in others if periodontitis_severity(entry.code))
        if periodontitis_severity(provisional):
            affected += 1
        return affected / (len(others) + 1) * 100

    def periodontal_summary(self) -> PeriodontalSummaryOut | None:
        entries = sorted(self.periodontal.values(), key=lambda item: item.tooth_number)
        if not entries:
            return None
        affected = [entry for entry in entries if periodontitis_severity(entry.code)]
        percent = len(affected) / len(entries) * 100
        bleeding = sum(entry.bleeding_sites for entry in entries)
        total_sites = sum(len(entry.sites) for entry in entries)
        worst = max(
            affected,
            key=lambda entry: SEVERITY_ORDER.index(periodontitis_severity(entry.code)),
            default=None,
        )
        summary = PeriodontalSummaryOut(
            tooth_count=len(entries),
            affected_teeth=[entry.tooth_number for entry in affected],
            affected_teeth_percent=percent,
            bleeding_sites=bleeding,
            bop_percent=bleeding / total_sites * 100 if total_sites else 0.0,
            extent=disease_extent(percent),
            worst_severity=periodontitis_severity(worst.code) if worst else None,
            worst_code=worst.code if worst else None,
            worst_description=worst.description if worst else None,
        )
        logger.debug(
            "Periodontal summary computed",
            extra={"tooth_count": summary.tooth_count, "extent": summary.extent, "worst_code": summary.worst_code},
        )
        return summary

    def set_tooth_status(
        self,
        tooth_number: int,
        *,
        is_missing: bool | None = None,
        is_to_be_extracted: bool | None = None,
    ) -> ToothStatusOut:
        current = self.statuses.get(tooth_number) or ToothStatusOut(tooth_number=tooth_number)
        changes = {}
        if is_missing is not None:
            changes["is_missing"] = is_missing
        if is_to_be_extracted is not None:
            changes["is_to_be_extracted"] = is_to_be_extracted
        status = current.model_copy(update=changes)
        self.statuses[tooth_number] = status
        return status

    def tooth_pathologies(self, tooth_number: int) -> list[PathologyOut]:
        return [item for item in self.pathologies if item.tooth_number == tooth_number]

    def tooth_restorations(self, tooth_number: int) -> list[RestorationOut]:
        return [item for item in self.restorations if item.tooth_number == tooth_number]

    def tooth_endodontics(self, tooth_number: int) -> list[EndodonticEntry]:
        return [item for item in self.endodontics if item.tooth_number == tooth_number]

    def tooth_periodontal(self, tooth_number: int) -> PeriodontalOut | None:
        return self.periodontal.get(tooth_number)

    def tooth_status(self, tooth_number: int) -> ToothStatusOut | None:
        return self.statuses.get(tooth_number)

    def clear_all(self) -> None:
        self.pathologies = []
        self.restorations = []
        self.endodontics = []
        self.periodontal = {}
        self.statuses = {}
