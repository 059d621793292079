from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("dental_dx.config")


class Settings(BaseSettings):
    app_env: str = "development"
    rules_dir: Path | None = Field(default=None, alias="DENTAL_DX_RULES_DIR")
    rule_ordering: Literal["specificity", "declaration"] = Field(
        default="specificity", alias="DENTAL_DX_RULE_ORDERING"
    )
    strict_rule_tables: bool = Field(default=False, alias="DENTAL_DX_STRICT_RULE_TABLES")
    default_patient_age: int = Field(default=30, alias="DENTAL_DX_DEFAULT_PATIENT_AGE")
    default_percent_teeth_affected: float = Field(
        default=30.0, alias="DENTAL_DX_DEFAULT_PERCENT_TEETH_AFFECTED"
    )
    icd10_catalogue_path: Path | None = Field(default=None, alias="DENTAL_DX_ICD10_CATALOGUE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator(
        "rules_dir",
        "rule_ordering",
        "strict_rule_tables",
        "default_patient_age",
        "default_percent_teeth_affected",
        "icd10_catalogue_path",
        mode="before",
    )
    @classmethod
    def _coerce_empty_values(cls, value, info):
        if value in {"", None}:
            return cls.model_fields[info.field_name].default
        return value


def _is_production(app_env: str) -> bool:
    return app_env.strip().lower() in {"prod", "production"}


def validate_settings(settings: Settings) -> None:
    production = _is_production(settings.app_env)
    failures: list[str] = []
    warnings: list[str] = []

    if settings.rules_dir is not None and not settings.rules_dir.is_dir():
        failures.append(f"DENTAL_DX_RULES_DIR does not exist: {settings.rules_dir}")

    if settings.icd10_catalogue_path is not None and not settings.icd10_catalogue_path.is_file():
        failures.append(f"DENTAL_DX_ICD10_CATALOGUE does not exist: {settings.icd10_catalogue_path}")

    if not 0 <= settings.default_patient_age <= 120:
        failures.append("DENTAL_DX_DEFAULT_PATIENT_AGE must be between 0 and 120")

    if not 0 <= settings.default_percent_teeth_affected <= 100:
        failures.append("DENTAL_DX_DEFAULT_PERCENT_TEETH_AFFECTED must be between 0 and 100")

    if settings.rules_dir is None:
        warnings.append("DENTAL_DX_RULES_DIR not set; using bundled reference tables")

    if not settings.strict_rule_tables:
        msg = "DENTAL_DX_STRICT_RULE_TABLES is off; malformed rule rows are only logged"
        if production:
            failures.append(msg)
        else:
            warnings.append(msg)

    for warning in warnings:
        logger.warning("Config warning: %s", warning)

    if failures:
        raise RuntimeError("Config validation failed: " + "; ".join(failures))


settings = Settings()
