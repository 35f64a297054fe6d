"""
Tests for kernel settings (invoicing_config).

Covers:
- YAML parsing into frozen dataclasses
- Validation of sections, log levels and per-table field maps
- get_active_settings resolution order and DATABASE_URL override
- Bridges into the kernel (engine, logging, resolver)
"""

from dataclasses import FrozenInstanceError
from pathlib import Path

import pytest
import yaml

from invoicing_config import (
    CONFIG_ENV_VAR,
    DATABASE_URL_ENV_VAR,
    KernelSettings,
    TableSettings,
    get_active_settings,
    load_settings,
    load_yaml_file,
    parse_settings,
)
from invoicing_config.bridges import apply_settings, build_resolver
from invoicing_kernel.db.engine import create_tables, reset_engine
from invoicing_kernel.domain.records import FieldMap
from invoicing_kernel.models import TaxRate

SETTINGS_YAML = """
database:
  url: "sqlite://"
  echo: false
logging:
  level: debug
tables:
  - name: tax_rates
    fields:
      value: rate
  - name: prices
    fields:
      value: amount
      is_default: standard
"""


@pytest.fixture
def settings_file(tmp_path) -> Path:
    path = tmp_path / "settings.yaml"
    path.write_text(SETTINGS_YAML)
    return path


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.delenv(DATABASE_URL_ENV_VAR, raising=False)


class TestParseSettings:

    def test_full_file(self, settings_file):
        settings = load_settings(settings_file)
        assert settings.database.url == "sqlite://"
        assert settings.database.echo is False
        assert settings.logging.level == "DEBUG"
        assert [t.name for t in settings.tables] == ["tax_rates", "prices"]

    def test_defaults_for_empty_file(self):
        settings = parse_settings({})
        assert settings == KernelSettings()
        assert settings.database.url == "sqlite://"
        assert settings.logging.level == "INFO"
        assert settings.tables == ()

    def test_field_map(self, settings_file):
        settings = load_settings(settings_file)
        assert settings.table("tax_rates").field_map() == FieldMap(value="rate")
        assert settings.table("prices").field_map() == FieldMap(value="amount", is_default="standard")

    def test_unconfigured_table_uses_logical_names(self, settings_file):
        assert load_settings(settings_file).table("time_dependent_records").field_map() == FieldMap()

    def test_unknown_logical_field(self):
        with pytest.raises(ValueError, match="Unknown logical field"):
            parse_settings({"tables": [{"name": "t", "fields": {"amount": "x"}}]})

    def test_unknown_section(self):
        with pytest.raises(ValueError, match="Unknown settings section"):
            parse_settings({"cache": {}})

    def test_unknown_log_level(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            parse_settings({"logging": {"level": "chatty"}})

    def test_duplicate_table(self):
        with pytest.raises(ValueError, match="Duplicate table settings"):
            parse_settings({"tables": [{"name": "t"}, {"name": "t"}]})

    def test_table_without_name(self):
        with pytest.raises(KeyError):
            parse_settings({"tables": [{"fields": {}}]})

    def test_settings_are_frozen(self, settings_file):
        settings = load_settings(settings_file)
        with pytest.raises(FrozenInstanceError):
            settings.database = None
        with pytest.raises(TypeError):
            settings.table("tax_rates").fields["value"] = "other"


class TestLoadYamlFile:

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_yaml_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("database: [\n")
        with pytest.raises(yaml.YAMLError):
            load_yaml_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="must be a mapping"):
            load_yaml_file(path)


class TestGetActiveSettings:

    def test_explicit_path(self, settings_file):
        assert get_active_settings(settings_file).logging.level == "DEBUG"

    def test_env_path(self, settings_file, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, str(settings_file))
        assert get_active_settings().table("prices").fields["value"] == "amount"

    def test_packaged_default(self):
        settings = get_active_settings()
        assert settings.table("tax_rates").field_map() == FieldMap(value="rate")

    def test_database_url_override(self, settings_file, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV_VAR, "postgresql://u:p@db/invoicing")
        settings = get_active_settings(settings_file)
        assert settings.database.url == "postgresql://u:p@db/invoicing"
        assert settings.logging.level == "DEBUG"

    def test_config_loaded_logged(self, settings_file, captured_logs):
        get_active_settings(settings_file)
        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert len(loaded) == 1
        assert loaded[0]["database_backend"] == "sqlite"
        assert loaded[0]["tables"] == ["tax_rates", "prices"]
        assert loaded[0]["url_from_env"] is False


class TestBridges:

    def test_build_resolver_uses_table_field_map(self, settings_file, deterministic_clock):
        settings = load_settings(settings_file)
        try:
            session_factory = apply_settings(settings)
            create_tables()
            resolver = build_resolver(settings, TaxRate, session_factory, deterministic_clock)
            assert resolver.cache.name == "tax_rates"
            assert resolver.valid_records_at(deterministic_clock.now()) == []
        finally:
            reset_engine()

    def test_table_settings_default_fields(self):
        assert TableSettings(name="x").field_map() == FieldMap()
