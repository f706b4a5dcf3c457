"""Financial DNA: the static role assignment of catalog categories.

The file is loaded once per process and never mutated. Category-id roles are
independent tagging axes (fixed/flex/debt vs essential/lifestyle), so one id
may appear in several lists. Entries that are not usable integers are kept as
``None`` and resolve to the zero-valued "Unknown" category downstream.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from app.core.config import get_settings


logger = logging.getLogger("fintrack.dna")

CategoryRef = int | None


class DNAConfigError(RuntimeError):
    pass


def _coerce_ref(value: Any) -> CategoryRef:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    logger.warning("Ignoring malformed category reference %r in financial DNA.", value)
    return None


class FinancialDNA(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    income_category_id: CategoryRef = None
    fixed_category_ids: tuple[CategoryRef, ...] = ()
    flex_category_ids: tuple[CategoryRef, ...] = ()
    debt_category_ids: tuple[CategoryRef, ...] = ()
    essential_category_ids: tuple[CategoryRef, ...] = ()
    lifestyle_category_ids: tuple[CategoryRef, ...] = ()
    side_hustle_category_id: CategoryRef = None
    unknown_category_id: CategoryRef = None
    deferrable_category_ids: tuple[CategoryRef, ...] | None = None

    volatility_reserve_rate: Decimal = Field(default=Decimal("0"), ge=0, le=1)
    recovery_target_income: Decimal = Decimal("0")
    ada_threshold: Decimal = Decimal("0")

    @field_validator("income_category_id", "side_hustle_category_id", "unknown_category_id", mode="before")
    @classmethod
    def _single_ref(cls, value: Any) -> CategoryRef:
        return _coerce_ref(value)

    @field_validator("volatility_reserve_rate", "recovery_target_income", "ada_threshold", mode="before")
    @classmethod
    def _exact_decimal(cls, value: Any) -> Any:
        # JSON numbers arrive as floats; go through str so 0.1 stays 0.1.
        if isinstance(value, float):
            return Decimal(str(value))
        return value

    @field_validator(
        "fixed_category_ids",
        "flex_category_ids",
        "debt_category_ids",
        "essential_category_ids",
        "lifestyle_category_ids",
        "deferrable_category_ids",
        mode="before",
    )
    @classmethod
    def _ref_list(cls, value: Any) -> tuple[CategoryRef, ...] | None:
        if value is None:
            return None
        if not isinstance(value, (list, tuple)):
            value = [value]
        return tuple(_coerce_ref(item) for item in value)

    # Rows without a category never match a role.
    def is_flex(self, category_id: CategoryRef) -> bool:
        return category_id is not None and category_id in self.flex_category_ids

    def is_essential(self, category_id: CategoryRef) -> bool:
        return category_id is not None and category_id in self.essential_category_ids

    def is_lifestyle(self, category_id: CategoryRef) -> bool:
        return category_id is not None and category_id in self.lifestyle_category_ids

    @property
    def deferral_candidates(self) -> tuple[CategoryRef, ...]:
        if self.deferrable_category_ids is None:
            return self.fixed_category_ids
        return self.deferrable_category_ids


def load_dna(path: str | Path) -> FinancialDNA:
    source = Path(path)
    try:
        raw = json.loads(source.read_text(encoding="utf-8"))
    except OSError as exc:
        raise DNAConfigError(f"Cannot read financial DNA file {source}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise DNAConfigError(f"Financial DNA file {source} is not valid JSON: {exc}") from exc
    if not isinstance(raw, dict):
        raise DNAConfigError(f"Financial DNA file {source} must contain a JSON object.")
    try:
        dna = FinancialDNA.model_validate(raw)
    except ValidationError as exc:
        raise DNAConfigError(f"Financial DNA file {source} failed validation: {exc}") from exc
    logger.info(
        "Loaded financial DNA from %s (%d fixed, %d flex, %d debt categories).",
        source,
        len(dna.fixed_category_ids),
        len(dna.flex_category_ids),
        len(dna.debt_category_ids),
    )
    return dna


@lru_cache
def get_dna() -> FinancialDNA:
    return load_dna(get_settings().dna_config_path)
