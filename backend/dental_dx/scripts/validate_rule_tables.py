from __future__ import annotations

import argparse
import json
from pathlib import Path

from dental_dx.core.settings import settings, validate_settings
from dental_dx.services.diagnosis.rule_store import RuleTableError, RuleTableStore
from dental_dx.services.diagnosis.types import RuleFamily


def build_report(rules_dir: Path | None, ordering: str) -> dict[str, object]:
    store = RuleTableStore.from_directory(rules_dir, ordering=ordering, strict=False)
    store.reload()
    issues = store.issues
    return {
        "source": store.source_label,
        "ordering": ordering,
        "row_counts": {family.value: len(store.table(family)) for family in RuleFamily},
        "issue_count": len(issues),
        "issues": [issue.model_dump(mode="json") for issue in issues],
    }


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Check curated diagnosis rule tables for malformed or ambiguous rows."
    )
    parser.add_argument(
        "--rules-dir",
        help="Directory holding caries/endodontic/thermal/periodontal JSON tables "
        "(default: DENTAL_DX_RULES_DIR or the bundled tables).",
    )
    parser.add_argument(
        "--ordering",
        default=settings.rule_ordering,
        choices=("specificity", "declaration"),
        help="Row ranking used when matching (default: DENTAL_DX_RULE_ORDERING).",
    )
    parser.add_argument("--output-json", help="Optional path to write the JSON report.")
    args = parser.parse_args()
    try:
        validate_settings(settings)
    except RuntimeError as exc:
        print(str(exc))
        return 2

    rules_dir = Path(args.rules_dir) if args.rules_dir else settings.rules_dir
    try:
        report = build_report(rules_dir, args.ordering)
    except RuleTableError as exc:
        print(str(exc))
        return 2

    if args.output_json:
        out = Path(args.output_json)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(report, indent=2) + "\n", encoding="utf-8")
    print(json.dumps(report, indent=2))
    return 1 if report["issue_count"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
