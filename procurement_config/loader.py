"""
Settings loader (``procurement_config.loader``).

Responsibility
--------------
Read a YAML settings file and parse it into the frozen dataclasses of
``procurement_config.schema``.  Callers use
``procurement_config.get_active_config()``; this module is its tooling.

Invariants enforced
-------------------
* Decimal settings are parsed from strings, never through float.
* Rates and tolerances are validated into their legal ranges; anything
  else raises ``SettingsError`` naming the offending key.
* ``compute_checksum`` is a deterministic SHA-256 over the parsed content.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``SettingsError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from procurement_config.schema import (
    ComparisonSettings,
    OrderSettings,
    ProcurementSettings,
    ProgressSettings,
)
from procurement_engines.progress import CompletionMode
from procurement_kernel.domain.values import ONE, ZERO, to_decimal
from procurement_kernel.exceptions import SettingsError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise SettingsError(str(path), "top level must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _decimal(
    section: dict[str, Any],
    key: str,
    default: Decimal,
    *,
    lower: Decimal = ZERO,
    upper: Decimal | None = ONE,
    path: str,
) -> Decimal:
    if key not in section:
        return default
    value = to_decimal(section[key])
    if value is None:
        raise SettingsError(f"{path}.{key}", f"not a number: {section[key]!r}")
    if value < lower or (upper is not None and value > upper):
        raise SettingsError(f"{path}.{key}", f"{value} outside [{lower}, {upper}]")
    return value


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise SettingsError(name, "must be a mapping")
    return section


def parse_comparison(data: dict[str, Any]) -> ComparisonSettings:
    section = _section(data, "comparison")
    defaults = ComparisonSettings()
    currency = str(section.get("base_currency", defaults.base_currency)).strip().upper()
    if not currency:
        raise SettingsError("comparison.base_currency", "must not be blank")
    return ComparisonSettings(
        base_currency=currency,
        min_winner_coverage=_decimal(
            section, "min_winner_coverage", defaults.min_winner_coverage, path="comparison"
        ),
    )


def parse_progress(data: dict[str, Any]) -> ProgressSettings:
    section = _section(data, "progress")
    defaults = ProgressSettings()
    raw_mode = section.get("completion_mode", defaults.completion_mode.value)
    try:
        mode = CompletionMode(str(raw_mode).strip().lower())
    except ValueError:
        raise SettingsError("progress.completion_mode", f"unknown mode {raw_mode!r}") from None
    epsilon = _decimal(section, "epsilon", defaults.epsilon, path="progress")
    if epsilon <= ZERO:
        raise SettingsError("progress.epsilon", "must be positive")
    return ProgressSettings(
        epsilon=epsilon,
        completion_threshold=_decimal(
            section, "completion_threshold", defaults.completion_threshold, path="progress"
        ),
        completion_mode=mode,
    )


def parse_orders(data: dict[str, Any]) -> OrderSettings:
    section = _section(data, "orders")
    defaults = OrderSettings()
    padding = section.get("sequence_padding", defaults.sequence_padding)
    if not isinstance(padding, int) or isinstance(padding, bool) or padding < 1:
        raise SettingsError("orders.sequence_padding", "must be a positive integer")
    return OrderSettings(
        igv_rate=_decimal(section, "igv_rate", defaults.igv_rate, path="orders"),
        discount_rate=_decimal(section, "discount_rate", defaults.discount_rate, path="orders"),
        order_number_suffix=str(
            section.get("order_number_suffix", defaults.order_number_suffix)
        ),
        sequence_padding=padding,
        default_supplier_name=str(
            section.get("default_supplier_name", defaults.default_supplier_name)
        ).strip()
        or defaults.default_supplier_name,
    )


def parse_settings(data: dict[str, Any]) -> ProcurementSettings:
    return ProcurementSettings(
        settings_id=str(data.get("settings_id", "default")),
        version=int(data.get("version", 1)),
        comparison=parse_comparison(data),
        progress=parse_progress(data),
        orders=parse_orders(data),
        checksum=compute_checksum(data),
    )


def load_settings(path: Path) -> ProcurementSettings:
    return parse_settings(load_yaml_file(path))
