"""
procurement_config -- single public entrypoint for procurement settings.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    Settings are read from a YAML settings set (``sets/default.yaml`` unless
    a path is given) and returned as a frozen ``ProcurementSettings``.

Architecture position:
    Configuration -- sits above ``procurement_kernel`` and
    ``procurement_engines`` and below ``procurement_modules`` /
    ``procurement_services``.  The kernel never imports from here.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``SettingsError`` -- a value fails validation.

Audit relevance:
    Every successful load emits a ``PROCUREMENT_CONFIG_TRACE`` record with
    the settings id, version and checksum.
"""

from __future__ import annotations

from pathlib import Path

from procurement_config.loader import load_settings
from procurement_config.schema import (
    ComparisonSettings,
    OrderSettings,
    ProcurementSettings,
    ProgressSettings,
)
from procurement_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_SETTINGS_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ProcurementSettings:
    """Load and validate the active settings set."""
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    settings = load_settings(settings_path)
    _logger.info(
        "PROCUREMENT_CONFIG_TRACE",
        extra={
            "trace_type": "PROCUREMENT_CONFIG_TRACE",
            "settings_id": settings.settings_id,
            "version": settings.version,
            "checksum": settings.checksum,
            "path": str(settings_path),
        },
    )
    return settings


__all__ = [
    "ComparisonSettings",
    "OrderSettings",
    "ProcurementSettings",
    "ProgressSettings",
    "get_active_config",
]
