"""
Settings loading tests: packaged defaults, override files, the environment
variable and the config -> core bridges.
"""

from decimal import Decimal

import pytest
import yaml

from agency_config import CONFIG_ENV_VAR, get_settings
from agency_config.bridges import default_bank_percentage, ledger_selector
from agency_config.loader import merge, parse_settings
from agency_finance.domain.money import Percentage


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="override.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    return _write


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)


class TestDefaults:

    def test_packaged_defaults(self):
        settings = get_settings()

        assert settings.database.url.startswith("sqlite")
        assert settings.logging.level == "INFO"
        assert settings.finance.default_bank_percentage == Decimal("2")
        assert settings.finance.default_page_size == 50
        assert settings.source.endswith("defaults.yaml")

    def test_load_is_logged(self, captured_logs):
        get_settings()
        records = [r for r in captured_logs() if r["message"] == "settings_loaded"]
        assert records[0]["database_dialect"].startswith("sqlite")


class TestOverrides:

    def test_override_file_merges_over_defaults(self, write_config):
        path = write_config({"finance": {"default_bank_percentage": 2.5}})

        settings = get_settings(path)

        assert settings.finance.default_bank_percentage == Decimal("2.5")
        assert settings.finance.default_page_size == 50
        assert settings.source == str(path)

    def test_environment_variable(self, write_config, monkeypatch):
        path = write_config({"logging": {"level": "debug"}})
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert get_settings().logging.level == "DEBUG"

    def test_explicit_path_wins_over_environment(self, write_config, monkeypatch):
        env_path = write_config({"finance": {"default_page_size": 10}}, "env.yaml")
        arg_path = write_config({"finance": {"default_page_size": 20}}, "arg.yaml")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(env_path))

        assert get_settings(arg_path).finance.default_page_size == 20

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_settings(tmp_path / "absent.yaml")


class TestValidation:

    @pytest.mark.parametrize(
        "data",
        [
            {"finance": {"default_bank_percentage": 101}},
            {"finance": {"default_bank_percentage": "abc"}},
            {"finance": {"default_page_size": 0}},
            {"finance": {"bank_key": "other"}},
            {"logging": {"level": "LOUD"}},
            {"metrics": {"enabled": True}},
        ],
    )
    def test_invalid_values_rejected(self, write_config, data):
        with pytest.raises(ValueError):
            get_settings(write_config(data))

    def test_root_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError):
            get_settings(path)

    def test_merge_is_recursive(self):
        merged = merge({"a": {"x": 1, "y": 2}, "b": 1}, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}


class TestBridges:

    def test_default_bank_percentage(self):
        settings = parse_settings({"finance": {"default_bank_percentage": "1.75"}})
        assert default_bank_percentage(settings) == Percentage(175)

    def test_ledger_selector_page_size(self, session):
        settings = parse_settings({"finance": {"default_page_size": 5}})
        assert ledger_selector(session, settings).default_page_size == 5
