"""Tests for A/B testing configuration parsing."""

import json
from datetime import date
from pathlib import Path

import pytest

from src.assignment.variants import ABTestConfig, VariantSpec, load_ab_testing_config
from src.quiz.errors import ConfigurationError

CATALOG = ["OpenAI_GPT_4o_Mini", "OpenAI_GPT_4o"]


def make_settings(**overrides: object) -> dict[str, object]:
    settings: dict[str, object] = {
        "fromDate": "2026-09-01",
        "toDate": "2027-06-30",
        "variants": [
            {"modelName": "OpenAI_GPT_4o_Mini", "weight": 2, "cost": 0.15},
            {"modelName": "OpenAI_GPT_4o", "cost": 2.5},
        ],
    }
    settings.update(overrides)
    return settings


class TestABTestConfig:
    def test_parses_camel_case(self) -> None:
        config = ABTestConfig.model_validate({"subjectKey": "PRG", **make_settings()})
        assert config.subject_key == "PRG"
        assert config.from_date == date(2026, 9, 1)
        assert config.model_names == CATALOG
        assert config.variants[0].weight == 2
        assert config.variants[1].weight == 1.0
        assert config.keep_model is True
        assert config.prompts == []

    def test_models_shorthand(self) -> None:
        config = ABTestConfig.model_validate(
            {"subjectKey": "PRG", "fromDate": "2026-01-01", "toDate": "2026-12-31", "models": CATALOG}
        )
        assert config.model_names == CATALOG
        assert all(v.cost == 0.0 for v in config.variants)

    def test_window_inclusive(self) -> None:
        config = ABTestConfig.model_validate({"subjectKey": "PRG", **make_settings()})
        assert config.is_active(date(2026, 9, 1))
        assert config.is_active(date(2027, 6, 30))
        assert not config.is_active(date(2026, 8, 31))
        assert not config.is_active(date(2027, 7, 1))

    def test_reversed_window_rejected(self) -> None:
        with pytest.raises(ValueError, match="after toDate"):
            ABTestConfig.model_validate(
                {"subjectKey": "PRG", **make_settings(fromDate="2027-01-01", toDate="2026-01-01")}
            )

    def test_duplicate_models_rejected(self) -> None:
        with pytest.raises(ValueError, match="distinct"):
            ABTestConfig.model_validate(
                {
                    "subjectKey": "PRG",
                    **make_settings(
                        variants=[{"modelName": "OpenAI_GPT_4o"}, {"modelName": "OpenAI_GPT_4o"}]
                    ),
                }
            )

    def test_empty_variants_rejected(self) -> None:
        with pytest.raises(ValueError):
            ABTestConfig.model_validate({"subjectKey": "PRG", **make_settings(variants=[])})

    def test_non_positive_weight_rejected(self) -> None:
        with pytest.raises(ValueError):
            VariantSpec.model_validate({"modelName": "OpenAI_GPT_4o", "weight": 0})


class TestLoadABTestingConfig:
    def test_from_mapping(self) -> None:
        configs = load_ab_testing_config({"PRG": make_settings()}, known_models=CATALOG)
        assert set(configs) == {"PRG"}
        assert configs["PRG"].subject_key == "PRG"

    def test_subjects_wrapper(self) -> None:
        configs = load_ab_testing_config({"subjects": {"PRG": make_settings(), "BD": make_settings()}})
        assert set(configs) == {"PRG", "BD"}

    def test_from_file(self, tmp_path: Path) -> None:
        path = tmp_path / "ab.json"
        path.write_text(json.dumps({"PRG": make_settings(costPriority=True)}), encoding="utf-8")
        configs = load_ab_testing_config(path, known_models=CATALOG)
        assert configs["PRG"].cost_priority is True

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_ab_testing_config(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / "ab.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationError, match="Cannot read"):
            load_ab_testing_config(path)

    def test_unknown_model(self) -> None:
        settings = make_settings(variants=[{"modelName": "Gemini_Pro"}])
        with pytest.raises(ConfigurationError, match="Gemini_Pro"):
            load_ab_testing_config({"PRG": settings}, known_models=CATALOG)

    def test_invalid_settings(self) -> None:
        with pytest.raises(ConfigurationError, match="Invalid A/B config"):
            load_ab_testing_config({"PRG": {"fromDate": "mañana"}})

    def test_settings_must_be_object(self) -> None:
        with pytest.raises(ConfigurationError, match="must be an object"):
            load_ab_testing_config({"PRG": ["OpenAI_GPT_4o"]})

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "ab.json"
        path.write_text(json.dumps(["PRG"]), encoding="utf-8")
        with pytest.raises(ConfigurationError, match="must map subject keys"):
            load_ab_testing_config(path)
