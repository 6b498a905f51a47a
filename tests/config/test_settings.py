"""
Tests for settings loading and validation.

Tests cover:
- The shipped default settings set
- PROCUREMENT_CONFIG_TRACE emission
- Partial files falling back to defaults
- Validation errors naming the offending key
"""

from decimal import Decimal

import pytest
import yaml

from procurement_config import ProcurementSettings, get_active_config
from procurement_config.loader import compute_checksum, load_settings
from procurement_engines.progress import CompletionMode
from procurement_kernel.exceptions import SettingsError


@pytest.fixture
def write_settings(tmp_path):
    def _write(data):
        path = tmp_path / "settings.yaml"
        text = data if isinstance(data, str) else yaml.safe_dump(data)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


class TestDefaultSettings:
    def test_default_set_matches_schema_defaults(self):
        settings = get_active_config()
        defaults = ProcurementSettings()

        assert settings.comparison == defaults.comparison
        assert settings.progress == defaults.progress
        assert settings.orders == defaults.orders
        assert settings.settings_id == "default"
        assert len(settings.checksum) == 64

    def test_decimal_values_are_exact(self):
        settings = get_active_config()
        assert settings.orders.igv_rate == Decimal("0.18")
        assert isinstance(settings.progress.epsilon, Decimal)

    def test_emits_config_trace(self, captured_logs):
        settings = get_active_config()

        (trace,) = [r for r in captured_logs() if r["message"] == "PROCUREMENT_CONFIG_TRACE"]
        assert trace["settings_id"] == "default"
        assert trace["checksum"] == settings.checksum


class TestLoading:
    def test_partial_file_uses_defaults(self, write_settings):
        path = write_settings({"settings_id": "obra-b", "progress": {"completion_mode": "BOTH"}})

        settings = load_settings(path)

        assert settings.settings_id == "obra-b"
        assert settings.progress.completion_mode == CompletionMode.BOTH
        assert settings.orders.order_number_suffix == "/CP"

    def test_empty_file(self, write_settings):
        assert load_settings(write_settings("")).comparison.base_currency == "PEN"

    def test_currency_upper_cased(self, write_settings):
        settings = load_settings(write_settings({"comparison": {"base_currency": "usd"}}))
        assert settings.comparison.base_currency == "USD"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")

    def test_checksum_deterministic(self):
        assert compute_checksum({"a": 1, "b": "2"}) == compute_checksum({"b": "2", "a": 1})


class TestValidation:
    @pytest.mark.parametrize(
        "data, key",
        [
            ({"orders": {"igv_rate": "1.5"}}, "orders.igv_rate"),
            ({"orders": {"discount_rate": "-0.1"}}, "orders.discount_rate"),
            ({"orders": {"sequence_padding": 0}}, "orders.sequence_padding"),
            ({"progress": {"epsilon": "0"}}, "progress.epsilon"),
            ({"progress": {"completion_mode": "sometimes"}}, "progress.completion_mode"),
            ({"comparison": {"min_winner_coverage": "abc"}}, "comparison.min_winner_coverage"),
            ({"comparison": {"base_currency": " "}}, "comparison.base_currency"),
            ({"orders": ["not", "a", "mapping"]}, "orders"),
        ],
    )
    def test_invalid_values(self, write_settings, data, key):
        with pytest.raises(SettingsError) as exc_info:
            load_settings(write_settings(data))
        assert exc_info.value.key == key
        assert exc_info.value.code == "INVALID_SETTINGS"

    def test_top_level_must_be_mapping(self, write_settings):
        with pytest.raises(SettingsError):
            load_settings(write_settings("- a\n- b\n"))
