from __future__ import annotations

import logging

from dental_dx.services.diagnosis.rule_table import RuleTable
from dental_dx.services.diagnosis.types import (
    CariesClass,
    CariesObservation,
    Cavitation,
    DecayDepth,
    Diagnosis,
    normalize_label,
)


logger = logging.getLogger(__name__)

ANY_ASPECT = "any"


def resolve_caries(
    table: RuleTable,
    aspect: str | None,
    depth: DecayDepth | str,
    cavitation: Cavitation | str,
    classification: CariesClass | str,
) -> Diagnosis | None:
    observation = CariesObservation(
        aspect=aspect or ANY_ASPECT,
        depth=depth,
        cavitation=cavitation,
        classification=classification,
    )
    return resolve_caries_observation(table, observation)


def _same_aspect(expected: str, observed: object) -> bool:
    return (normalize_label(expected) or ANY_ASPECT) == (normalize_label(observed) or ANY_ASPECT)


def resolve_caries_observation(table: RuleTable, observation: CariesObservation) -> Diagnosis | None:
    """Look up the exact aspect first, then fall back to the ``any`` rows.

    The first pass compares the aspect literally, so an ``any`` row never
    shadows a row written for the observed aspect, whatever the table order.
    """
    observed = {
        "aspect": observation.aspect,
        "depth": observation.depth,
        "cavitation": observation.cavitation,
        "classification": observation.classification,
    }
    row = table.first_match(observed, predicates={"aspect": _same_aspect})
    if row is None and normalize_label(observation.aspect) != ANY_ASPECT:
        row = table.first_match({**observed, "aspect": ANY_ASPECT})
        if row is not None:
            logger.debug(
                "Caries aspect fallback used",
                extra={"aspect": observation.aspect, "code": row.code},
            )
    if row is None or not row.has_code:
        return None
    return Diagnosis(code=row.code, description=row.description)
