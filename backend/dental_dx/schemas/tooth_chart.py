from datetime import datetime
from typing import Literal
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from dental_dx.services.diagnosis.types import (
    CariesClass,
    Cavitation,
    DecayDepth,
    SiteName,
    normalize_label,
)

PathologyType = Literal["caries", "fracture", "tooth_wear", "discoloration", "apical", "development"]
RestorationType = Literal["filling", "veneer", "crown"]
ActionType = Literal["monitor", "treat"]
QualityType = Literal["Sufficient", "Uncertain", "Insufficient"]
CrownType = Literal["Single Crown", "Abutment", "Pontic"]
ExtentType = Literal["localized", "generalized"]


def _entry_id() -> str:
    return uuid4().hex[:12]


class PathologyCreate(BaseModel):
    tooth_number: int = Field(..., ge=11, le=85)
    type: PathologyType
    surfaces: list[int] = Field(default_factory=list)
    depth: DecayDepth | None = None
    cavitation: Cavitation | None = None
    classification: CariesClass | None = None
    fracture_type: str | None = None
    fracture_direction: str | None = None
    wear_type: str | None = None
    wear_location: str | None = None
    color: str | None = None
    action: ActionType = "monitor"
    code: str | None = None
    description: str | None = None

    @field_validator("depth", "cavitation", mode="before")
    @classmethod
    def _normalize_caries_label(cls, value):
        if isinstance(value, str):
            return normalize_label(value) or None
        return value

    @field_validator("classification", mode="before")
    @classmethod
    def _normalize_classification(cls, value):
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


class PathologyOut(PathologyCreate):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_entry_id)
    created_at: datetime


class RestorationCreate(BaseModel):
    tooth_number: int = Field(..., ge=11, le=85)
    type: RestorationType
    surfaces: list[int] = Field(default_factory=list)
    material: str | None = None
    quality: QualityType | None = None
    quality_detail: str | None = None
    crown_type: CrownType | None = None
    crown_base: str | None = None
    implant_type: str | None = None
    action: ActionType = "monitor"
    code: str | None = None
    description: str | None = None


class RestorationOut(RestorationCreate):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_entry_id)
    created_at: datetime


class PeriodontalOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    tooth_number: int
    sites: dict[SiteName, dict[str, int | bool]]
    mobility: int = 0
    max_probing_depth: int
    max_cal: int
    bleeding_sites: int = 0
    percent_teeth_affected: float | None = None
    code: str | None = None
    description: str | None = None
    updated_at: datetime


class PeriodontalSummaryOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    tooth_count: int
    affected_teeth: list[int] = Field(default_factory=list)
    affected_teeth_percent: float
    bleeding_sites: int
    bop_percent: float
    extent: ExtentType
    worst_severity: str | None = None
    worst_code: str | None = None
    worst_description: str | None = None


class ToothStatusOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    tooth_number: int
    is_missing: bool = False
    is_to_be_extracted: bool = False
