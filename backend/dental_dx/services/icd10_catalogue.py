from __future__ import annotations

import json
import logging
from pathlib import Path

from pydantic import BaseModel, ConfigDict, field_validator

from dental_dx.core.settings import Settings, settings


logger = logging.getLogger(__name__)

BUNDLED_CATALOGUE_PATH = Path(__file__).resolve().parent / "icd10_codes.json"
DEFAULT_CATEGORY = "Other"


class ICD10Code(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    description: str
    category: str = DEFAULT_CATEGORY

    @field_validator("category", mode="before")
    @classmethod
    def _default_category(cls, value):
        if value is None or not str(value).strip():
            return DEFAULT_CATEGORY
        return str(value).strip()


class ICD10Catalogue:
    def __init__(self, codes: list[ICD10Code]) -> None:
        self.codes = codes
        self._by_code = {item.code.upper(): item for item in codes}

    @classmethod
    def from_file(cls, path: Path | None = None) -> ICD10Catalogue:
        path = path or BUNDLED_CATALOGUE_PATH
        raw = path.read_text(encoding="utf-8")
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f"{path} must contain a JSON list.")
        codes = [ICD10Code.model_validate(item) for item in data]
        logger.info("ICD-10 catalogue loaded", extra={"path": str(path), "code_count": len(codes)})
        return cls(codes)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> ICD10Catalogue:
        config = config or settings
        return cls.from_file(config.icd10_catalogue_path)

    def lookup(self, code: str) -> ICD10Code | None:
        return self._by_code.get(code.strip().upper())

    def describe(self, combined_code: str) -> list[ICD10Code | None]:
        return [self.lookup(part) for part in combined_code.split("+") if part.strip()]

    def categories(self) -> dict[str, list[ICD10Code]]:
        grouped: dict[str, list[ICD10Code]] = {}
        for item in self.codes:
            grouped.setdefault(item.category, []).append(item)
        return grouped

    def search(self, query: str | None = None, category: str | None = None) -> list[ICD10Code]:
        results = self.codes
        if category:
            wanted = category.strip().lower()
            results = [item for item in results if item.category.lower() == wanted]
        if query:
            needle = query.strip().lower()
            results = [
                item
                for item in results
                if needle in item.code.lower() or needle in item.description.lower()
            ]
        return list(results)
