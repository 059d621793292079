from __future__ import annotations

import enum
import re

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class RuleFamily(str, enum.Enum):
    caries = "caries"
    endodontic = "endodontic"
    thermal = "thermal"
    periodontal = "periodontal"


class DecayDepth(str, enum.Enum):
    enamel = "enamel"
    dentin = "dentin"
    root = "root"


class Cavitation(str, enum.Enum):
    cavitated = "cavitated"
    not_cavitated = "not_cavitated"


class CariesClass(str, enum.Enum):
    c1 = "C1"
    c2 = "C2"
    c3 = "C3"
    c4 = "C4"


class EndoTestKind(str, enum.Enum):
    cold = "cold"
    percussion = "percussion"
    palpation = "palpation"
    heat = "heat"
    electricity = "electricity"


class SiteName(str, enum.Enum):
    disto_palatal = "disto_palatal"
    palatal = "palatal"
    mesio_palatal = "mesio_palatal"
    disto_buccal = "disto_buccal"
    buccal = "buccal"
    mesio_buccal = "mesio_buccal"


POSITIVE_DETAILS = frozenset({"within_limits", "unpleasant", "pain_stimulus", "pain_lingering"})
NOT_APPLICABLE_REASONS = frozenset({"existing_rct", "previously_initiated_therapy"})

_LABEL_SEPARATORS_RE = re.compile(r"[\s\-]+")

_LABEL_ALIASES = {
    "n/a": "not_applicable",
    "na": "not_applicable",
    "cavitation": "cavitated",
    "no_cavitation": "not_cavitated",
    "lingering": "pain_lingering",
    "stimulus": "pain_stimulus",
    "prev_initiated": "previously_initiated_therapy",
    "previously_initiated": "previously_initiated_therapy",
}


def normalize_label(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, enum.Enum):
        value = value.value
    text = str(value).strip().lower()
    if not text:
        return ""
    text = _LABEL_SEPARATORS_RE.sub("_", text)
    return _LABEL_ALIASES.get(text, text)


class InvalidObservationError(ValueError):
    """Raised for observation values that can never be resolved.

    ``field`` names the offending input so callers can point the clinician at it.
    """

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


# Charting widgets offer ">12" and "<-12" as open-ended buttons; they are stored
# one step past the last finite value so max/min ordering still holds.
PROBING_DEPTH_OVER_12 = 13
GINGIVAL_MARGIN_UNDER_MINUS_12 = -13

_SIGNED_INT_RE = re.compile(r"^[+-]?\d+$")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def parse_probing_depth(reading: str | int) -> int:
    if isinstance(reading, int):
        return reading
    text = str(reading).strip().replace(" ", "")
    if text == ">12":
        return PROBING_DEPTH_OVER_12
    if _SIGNED_INT_RE.match(text):
        return int(text)
    raise InvalidObservationError("probing_depth", f"unrecognised reading {reading!r}")


def parse_gingival_margin(reading: str | int) -> int:
    if isinstance(reading, int):
        return reading
    text = str(reading).strip().replace(" ", "")
    if text == "<-12":
        return GINGIVAL_MARGIN_UNDER_MINUS_12
    if text in {"+/-", "±"}:
        return 0
    if _SIGNED_INT_RE.match(text):
        return int(text)
    raise InvalidObservationError("gingival_margin", f"unrecognised reading {reading!r}")


def _site_key(key: object) -> object:
    if isinstance(key, SiteName) or not isinstance(key, str):
        return key
    snake = _LABEL_SEPARATORS_RE.sub("_", key.strip())
    return _CAMEL_BOUNDARY_RE.sub("_", snake).lower()


class Diagnosis(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    description: str = ""

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(part.strip() for part in self.code.split("+") if part.strip())


class CariesObservation(BaseModel):
    aspect: str = "any"
    depth: DecayDepth
    cavitation: Cavitation
    classification: CariesClass

    @field_validator("depth", "cavitation", mode="before")
    @classmethod
    def _normalize_enum_label(cls, value):
        if isinstance(value, str):
            return normalize_label(value)
        return value

    @field_validator("classification", mode="before")
    @classmethod
    def _normalize_classification(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value


class EndodonticTestResult(BaseModel):
    result: str | None = None
    detail: str | None = None

    @property
    def normalized_result(self) -> str:
        return normalize_label(self.result)

    @property
    def normalized_detail(self) -> str:
        return normalize_label(self.detail)


class PeriodontalSiteMeasurement(BaseModel):
    probing_depth: int = Field(..., ge=0, le=13)
    gingival_margin: int = Field(..., ge=-13, le=7)
    bleeding: bool = False
    plaque: bool = False
    pus: bool = False
    tartar: bool = False

    @field_validator("probing_depth", mode="before")
    @classmethod
    def _parse_probing_depth(cls, value):
        if isinstance(value, str):
            return parse_probing_depth(value)
        return value

    @field_validator("gingival_margin", mode="before")
    @classmethod
    def _parse_gingival_margin(cls, value):
        if isinstance(value, str):
            return parse_gingival_margin(value)
        return value


class PeriodontalObservation(BaseModel):
    sites: dict[SiteName, PeriodontalSiteMeasurement]
    mobility: int = Field(default=0, ge=0, le=3)
    patient_age: int | None = Field(default=None, ge=0)
    percent_teeth_affected: float | None = Field(default=None, ge=0, le=100)

    @field_validator("sites", mode="before")
    @classmethod
    def _normalize_site_keys(cls, value):
        if isinstance(value, dict):
            return {_site_key(key): item for key, item in value.items()}
        return value

    @model_validator(mode="after")
    def _require_all_sites(self) -> "PeriodontalObservation":
        missing = [site.value for site in SiteName if site not in self.sites]
        if missing:
            raise ValueError(f"sites missing measurements for: {', '.join(missing)}")
        return self


class PeriodontalAggregates(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_probing_depth: int
    min_gingival_margin: int
    max_cal: int
    any_bleeding: bool
    any_plaque: bool
    any_pus: bool = False
    any_tartar: bool = False
    site_cal: dict[str, int] = Field(default_factory=dict)
