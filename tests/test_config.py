from __future__ import annotations

from pathlib import Path

import pytest

from helpdesk_engine.config import (
    ConfigError,
    engine_settings,
    ingestion_settings,
    load_config,
    oracle_settings,
    resolve_path,
)


def test_load_config_reads_yaml(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("engine:\n  seed: 3\n", encoding="utf-8")

    assert load_config(config_path) == {"engine": {"seed": 3}}


def test_missing_config_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        load_config(tmp_path / "absent.yaml")


def test_invalid_yaml_raises(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("engine: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_non_mapping_config_raises(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_engine_settings_merge_over_defaults() -> None:
    settings = engine_settings({"engine": {"sla_top_n": 3}})

    assert settings["sla_top_n"] == 3
    assert settings["keyword_top_n"] == 30
    assert settings["holdout_fraction"] == 0.2
    assert engine_settings({})["min_evaluation_size"] == 10


def test_resolve_path_relative_to_base(tmp_path: Path) -> None:
    assert resolve_path("reports", base=tmp_path) == tmp_path / "reports"
    assert resolve_path(str(tmp_path / "abs"), base=Path("/elsewhere")) == tmp_path / "abs"
    assert resolve_path(None, base=tmp_path) == tmp_path


@pytest.mark.parametrize(
    "engine",
    [
        {"holdout_fraction": 1.5},
        {"holdout_fraction": 0},
        {"sla_top_n": 0},
        {"keyword_top_n": "many"},
        {"seeed": 3},
    ],
)
def test_invalid_engine_settings_raise(engine: dict) -> None:
    with pytest.raises(ConfigError):
        engine_settings({"engine": engine})


def test_engine_values_are_coerced() -> None:
    settings = engine_settings({"engine": {"sla_top_n": "4", "seed": "7", "holdout_fraction": "0.25"}})

    assert settings["sla_top_n"] == 4
    assert settings["seed"] == 7
    assert settings["holdout_fraction"] == 0.25


def test_oracle_settings_defaults_and_validation() -> None:
    settings = oracle_settings({"oracle": {"base_url": "https://example.test", "rate_limit_per_minute": 30}})

    assert settings["model"] == "gemini-2.5-flash"
    assert settings["api_key"] is None
    assert settings["rate_limit_per_minute"] == 30
    assert settings["max_attempts"] == 3
    with pytest.raises(ConfigError):
        oracle_settings({"oracle": {"max_concurrency": 0}})
    with pytest.raises(ConfigError):
        oracle_settings({"oracle": ["not", "a", "mapping"]})


def test_ingestion_settings_normalise_vocabularies() -> None:
    settings = ingestion_settings({"ingestion": {"categories": ["Email", "Printing"]}})

    assert settings["categories"] == ("Email", "Printing")
    assert settings["priorities"] == ("Low", "Medium", "High", "Critical")
    assert settings["fuzzy_threshold"] == 85
    with pytest.raises(ConfigError):
        ingestion_settings({"ingestion": {"priorities": "High"}})
    with pytest.raises(ConfigError):
        ingestion_settings({"ingestion": {"header_mapping": ["Issue"]}})
