"""A/B testing configuration per subject.

The configuration file maps subject keys to a date window, the model
variants under comparison and the selection priorities::

    {
      "PRG": {
        "fromDate": "2024-01-01",
        "toDate": "2026-12-31",
        "variants": [{"modelName": "OpenAI_GPT_4o_Mini", "weight": 1, "cost": 0.15}],
        "costPriority": false,
        "fewerReportedPriority": false,
        "keepModel": true,
        "prompts": ["Genera {numQuestions} preguntas de {subject} sobre {topic}..."]
      }
    }

``"models": ["A", "B"]`` is accepted as shorthand for equally weighted
variants with zero cost.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from datetime import date
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from src.quiz.errors import ConfigurationError


class VariantSpec(BaseModel):
    """One model under comparison."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, protected_namespaces=())

    model_name: str = Field(..., min_length=1, alias="modelName")
    weight: float = Field(default=1.0, gt=0)
    cost: float = Field(default=0.0, ge=0)


class ABTestConfig(BaseModel):
    """Static A/B configuration for one subject. Dates are inclusive."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    subject_key: str = Field(..., min_length=1, alias="subjectKey")
    from_date: date = Field(..., alias="fromDate")
    to_date: date = Field(..., alias="toDate")
    variants: list[VariantSpec] = Field(..., min_length=1)
    cost_priority: bool = Field(default=False, alias="costPriority")
    fewer_reported_priority: bool = Field(default=False, alias="fewerReportedPriority")
    keep_model: bool = Field(default=True, alias="keepModel")
    prompts: list[str] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _expand_model_shorthand(cls, data: Any) -> Any:
        if isinstance(data, dict) and "variants" not in data and isinstance(data.get("models"), list):
            models = data["models"]
            data = {k: v for k, v in data.items() if k != "models"}
            data["variants"] = [{"model_name": m} if isinstance(m, str) else m for m in models]
        return data

    @model_validator(mode="after")
    def _check_window(self) -> ABTestConfig:
        if self.from_date > self.to_date:
            raise ValueError(f"fromDate {self.from_date} is after toDate {self.to_date}")
        names = self.model_names
        if len(set(names)) != len(names):
            raise ValueError("variants must name distinct models")
        if any(not p.strip() for p in self.prompts):
            raise ValueError("prompts cannot be empty")
        return self

    @property
    def model_names(self) -> list[str]:
        return [v.model_name for v in self.variants]

    def is_active(self, on: date) -> bool:
        return self.from_date <= on <= self.to_date


def load_ab_testing_config(
    source: Union[str, Path, Mapping[str, Any]],
    known_models: Optional[Iterable[str]] = None,
) -> dict[str, ABTestConfig]:
    """Parse and validate per-subject A/B configurations.

    Args:
        source: Path to a JSON file, or an already parsed mapping. The
            subjects may sit at the top level or under ``"subjects"``.
        known_models: Model catalog names; variants must be among them.

    Raises:
        ConfigurationError: On unreadable files, invalid structure or
            models missing from the catalog.
    """
    if isinstance(source, Mapping):
        raw: Any = source
    else:
        try:
            raw = json.loads(Path(source).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise ConfigurationError(f"Cannot read A/B testing config {source}: {exc}") from exc

    if isinstance(raw, Mapping) and "subjects" in raw:
        raw = raw["subjects"]
    if not isinstance(raw, Mapping):
        raise ConfigurationError("A/B testing config must map subject keys to settings")

    catalog = set(known_models) if known_models is not None else None
    configs: dict[str, ABTestConfig] = {}
    for subject_key, settings in raw.items():
        if not isinstance(settings, Mapping):
            raise ConfigurationError(f"A/B settings for {subject_key!r} must be an object")
        try:
            config = ABTestConfig.model_validate({"subject_key": subject_key, **settings})
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid A/B config for {subject_key!r}: {exc}") from exc

        if catalog is not None:
            unknown = [name for name in config.model_names if name not in catalog]
            if unknown:
                raise ConfigurationError(
                    f"A/B config for {subject_key!r} names unknown models: {', '.join(unknown)}"
                )
        configs[config.subject_key] = config
    return configs
