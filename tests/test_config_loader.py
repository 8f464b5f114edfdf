"""
Tests for config.loader module.

Tests cover:
- Loading valid run.config.yaml files
- Inline queries combined with queries_file
- Missing files, invalid YAML and schema errors
"""

import pytest

from geo_tracker.config.loader import build_run_config, load_run_config
from geo_tracker.config.schema import RunFileConfig
from geo_tracker.exceptions import ConfigFileNotFoundError, ConfigValidationError

VALID_CONFIG = """\
company_id: acme
brand:
  name: Acme Vitamins
  industry: supplements
providers: [openai, perplexity]
models:
  openai: gpt-4.1
mode: internal
market: FR
language: fr
queries:
  - Meilleures marques de vitamines bio en Europe
settings:
  request_timeout: 90
  max_retries: 2
  sleep_ms: 250
  raw: true
"""


class TestLoadRunConfig:
    """Test load_run_config()."""

    def test_load_valid_config(self, tmp_path):
        """Test every field is carried into the RunConfig."""
        path = tmp_path / "run.config.yaml"
        path.write_text(VALID_CONFIG, encoding="utf-8")

        config = load_run_config(path)

        assert config.company_id == "acme"
        assert config.brand_name == "Acme Vitamins"
        assert config.industry == "supplements"
        assert config.providers == ("openai", "perplexity")
        assert config.model_for("openai") == "gpt-4.1"
        assert config.mode == "internal"
        assert config.market == "FR"
        assert config.language == "fr"
        assert config.timeout_seconds == 90
        assert config.max_retries == 2
        assert config.inter_query_delay_ms == 250
        assert config.raw is True
        assert [q.prompt_id for q in config.queries] == ["q_1"]

    def test_queries_file_relative_to_config(self, tmp_path):
        """Test queries_file is resolved next to the YAML and follows inline queries."""
        (tmp_path / "queries.txt").write_text("second\n\nthird\n", encoding="utf-8")
        path = tmp_path / "run.config.yaml"
        path.write_text(
            "brand:\n  name: Acme\nproviders: [openai]\n"
            "queries: [first]\nqueries_file: queries.txt\n",
            encoding="utf-8",
        )

        config = load_run_config(path)

        assert [(q.question, q.prompt_id) for q in config.queries] == [
            ("first", "q_1"),
            ("second", "q_2"),
            ("third", "q_3"),
        ]

    def test_config_without_queries_loads(self, tmp_path):
        """Test a file without queries loads; submission checks reject it later."""
        path = tmp_path / "run.config.yaml"
        path.write_text("brand:\n  name: Acme\nproviders: [gemini]\n", encoding="utf-8")

        assert load_run_config(path).queries == ()

    def test_missing_config_file(self, tmp_path):
        with pytest.raises(ConfigFileNotFoundError, match="Configuration file not found"):
            load_run_config(tmp_path / "nope.yaml")

    def test_missing_queries_file(self, tmp_path):
        path = tmp_path / "run.config.yaml"
        path.write_text(
            "brand:\n  name: Acme\nproviders: [openai]\nqueries_file: gone.txt\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigFileNotFoundError, match="Queries file not found"):
            load_run_config(path)

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "run.config.yaml"
        path.write_text("brand: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="Invalid YAML syntax"):
            load_run_config(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "run.config.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigValidationError, match="Configuration file is empty"):
            load_run_config(path)

    def test_schema_errors_listed(self, tmp_path):
        """Test validation errors name the failing field."""
        path = tmp_path / "run.config.yaml"
        path.write_text("brand:\n  name: Acme\nproviders: [openai, bard]\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_run_config(path)

        assert "providers.1" in str(exc_info.value)

    def test_invalid_request_settings(self, tmp_path):
        """Test RunConfig field errors are wrapped as ConfigValidationError."""
        path = tmp_path / "run.config.yaml"
        path.write_text(
            "brand:\n  name: Acme\nproviders: [openai]\nsettings:\n  request_timeout: 0\n",
            encoding="utf-8",
        )

        with pytest.raises(ConfigValidationError, match="timeout_seconds"):
            load_run_config(path)


class TestBuildRunConfig:
    """Test build_run_config()."""

    def test_absolute_queries_file(self, tmp_path):
        """Test an absolute queries_file ignores base_dir."""
        queries_path = tmp_path / "abs.txt"
        queries_path.write_text("only\n", encoding="utf-8")
        file_config = RunFileConfig.model_validate(
            {
                "brand": {"name": "Acme"},
                "providers": ["openai"],
                "queries_file": str(queries_path),
            }
        )

        config = build_run_config(file_config, base_dir=tmp_path / "elsewhere")

        assert [q.question for q in config.queries] == ["only"]
