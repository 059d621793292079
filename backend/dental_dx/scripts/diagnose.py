from __future__ import annotations

import argparse
import json
from pathlib import Path

from pydantic import ValidationError

from dental_dx.core.settings import settings, validate_settings
from dental_dx.services.diagnosis.caries import resolve_caries
from dental_dx.services.diagnosis.endodontic import (
    assess_endodontic,
    resolve_electricity,
    resolve_endodontic,
    resolve_heat,
)
from dental_dx.services.diagnosis.periodontal import (
    aggregate_sites,
    periodontitis_severity,
    resolve_periodontal_aggregates,
)
from dental_dx.services.diagnosis.rule_store import RuleTableStore
from dental_dx.services.diagnosis.types import (
    Diagnosis,
    EndodonticTestResult,
    InvalidObservationError,
    PeriodontalObservation,
)


def _diagnosis_payload(diagnosis: Diagnosis | None) -> dict[str, object]:
    if diagnosis is None:
        return {"code": None, "description": None, "codes": []}
    return {
        "code": diagnosis.code,
        "description": diagnosis.description,
        "codes": list(diagnosis.codes),
    }


def _load_sites(path: str) -> dict:
    raw = Path(path).read_text(encoding="utf-8")
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must contain a JSON object keyed by site name.")
    return data


def diagnose_caries(store: RuleTableStore, args: argparse.Namespace) -> dict[str, object]:
    diagnosis = resolve_caries(
        store.caries, args.aspect, args.depth, args.cavitation, args.classification
    )
    return {"family": "caries", **_diagnosis_payload(diagnosis)}


def diagnose_endodontic(store: RuleTableStore, args: argparse.Namespace) -> dict[str, object]:
    combined = resolve_endodontic(
        store.endodontic,
        EndodonticTestResult(result=args.cold, detail=args.cold_detail),
        args.percussion,
        args.palpation,
        has_swelling=args.swelling,
        has_sinus_tract=args.sinus_tract,
    )
    assessment = assess_endodontic(combined)
    report: dict[str, object] = {
        "family": "endodontic",
        **_diagnosis_payload(combined),
        "urgency": assessment.urgency.value,
        "pulp": assessment.pulp,
        "periapical": assessment.periapical,
    }
    if args.heat:
        heat = resolve_heat(store.thermal, EndodonticTestResult(result=args.heat, detail=args.heat_detail))
        report["heat"] = _diagnosis_payload(heat)
    if args.electricity is not None:
        report["electricity"] = _diagnosis_payload(resolve_electricity(args.electricity))
    return report


def diagnose_periodontal(store: RuleTableStore, args: argparse.Namespace) -> dict[str, object]:
    observation = PeriodontalObservation(
        sites=_load_sites(args.sites_json),
        mobility=args.mobility,
        patient_age=args.age,
        percent_teeth_affected=args.percent,
    )
    age = observation.patient_age if observation.patient_age is not None else settings.default_patient_age
    percent = (
        observation.percent_teeth_affected
        if observation.percent_teeth_affected is not None
        else settings.default_percent_teeth_affected
    )
    aggregates = aggregate_sites(observation.sites)
    diagnosis = resolve_periodontal_aggregates(store.periodontal, aggregates, age, percent)
    return {
        "family": "periodontal",
        **_diagnosis_payload(diagnosis),
        "severity": periodontitis_severity(diagnosis),
        "patient_age": age,
        "percent_teeth_affected": percent,
        "aggregates": aggregates.model_dump(mode="json"),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Resolve one clinical observation to an ICD-10 code.")
    parser.add_argument("--rules-dir", help="Override DENTAL_DX_RULES_DIR for this run.")
    subparsers = parser.add_subparsers(dest="family", required=True)

    caries = subparsers.add_parser("caries", help="Decay: aspect, depth, cavitation, classification.")
    caries.add_argument("--aspect", default="any")
    caries.add_argument("--depth", required=True, help="Enamel, Dentin or Root.")
    caries.add_argument("--cavitation", required=True, help="Cavitated or Not Cavitated.")
    caries.add_argument("--classification", default="C1", help="C1..C4 (default: C1).")

    endo = subparsers.add_parser("endo", help="Cold/percussion/palpation plus optional heat and EPT.")
    endo.add_argument("--cold", required=True, help="positive, negative, uncertain or n/a.")
    endo.add_argument("--cold-detail", help="Positive detail or N/A reason.")
    endo.add_argument("--percussion", default="")
    endo.add_argument("--palpation", default="")
    endo.add_argument("--heat")
    endo.add_argument("--heat-detail")
    endo.add_argument("--electricity", type=int, help="Electric pulp test reading 1-10.")
    endo.add_argument("--swelling", action="store_true", help="Swelling over the apex.")
    endo.add_argument("--sinus-tract", action="store_true", help="Draining sinus tract present.")

    perio = subparsers.add_parser("perio", help="Six-site periodontal chart for one tooth.")
    perio.add_argument("--sites-json", required=True, help="JSON object of six site measurements.")
    perio.add_argument("--mobility", type=int, default=0)
    perio.add_argument("--age", type=int, help="Patient age (default: DENTAL_DX_DEFAULT_PATIENT_AGE).")
    perio.add_argument(
        "--percent",
        type=float,
        help="Percent of teeth affected (default: DENTAL_DX_DEFAULT_PERCENT_TEETH_AFFECTED).",
    )
    args = parser.parse_args()
    try:
        validate_settings(settings)
    except RuntimeError as exc:
        print(str(exc))
        return 2

    if args.rules_dir:
        store = RuleTableStore.from_directory(
            Path(args.rules_dir),
            ordering=settings.rule_ordering,
            strict=settings.strict_rule_tables,
        )
    else:
        store = RuleTableStore.from_settings()

    handlers = {
        "caries": diagnose_caries,
        "endo": diagnose_endodontic,
        "perio": diagnose_periodontal,
    }
    try:
        report = handlers[args.family](store, args)
    except (InvalidObservationError, ValidationError, RuntimeError) as exc:
        print(str(exc))
        return 2

    print(json.dumps(report, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
