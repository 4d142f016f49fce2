"""
ledger_config -- single public entrypoint for closing configuration.

Responsibility:
    Provides the way to obtain ``ClosingSettings`` at runtime through
    ``get_active_settings()``.  The kernel never reads configuration files or
    environment variables; settings objects are passed to services at
    construction.

Architecture position:
    Configuration -- YAML-driven policy.  Depends only on
    ``ledger_kernel.domain`` value types.

Failure modes:
    - ``FileNotFoundError`` -- ``LEDGER_CONFIG_PATH`` points at a missing file.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every load emits a ``ledger_config_loaded`` log entry with the source
    path and checksum, tying a process's behavior to the exact policy file.
"""

from __future__ import annotations

import os
from pathlib import Path

from ledger_config.loader import compute_checksum, load_yaml_file, parse_settings
from ledger_config.schema import (
    ApprovalRuleDef,
    ChecklistItemDef,
    ClosingSettings,
    PeriodTemplateDef,
)
from ledger_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "closing.yaml"

_active: ClosingSettings | None = None


def load_settings_from(path: Path) -> ClosingSettings:
    """Load and validate settings from ``path``."""
    data = load_yaml_file(path)
    settings = parse_settings(data)
    logger.info(
        "ledger_config_loaded",
        extra={
            "config_path": str(path),
            "checksum": compute_checksum(data),
            "template_count": len(settings.templates),
            "rule_count": len(settings.approval_rules),
        },
    )
    return settings


def get_active_settings() -> ClosingSettings:
    """
    The process-wide settings, loaded once.

    ``LEDGER_CONFIG_PATH`` overrides the packaged defaults file.
    """
    global _active
    if _active is None:
        path = Path(os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
        _active = load_settings_from(path)
    return _active


def reset_active_settings() -> None:
    """Forget the cached settings (tests and config reloads)."""
    global _active
    _active = None


__all__ = [
    "ApprovalRuleDef",
    "ChecklistItemDef",
    "ClosingSettings",
    "PeriodTemplateDef",
    "get_active_settings",
    "load_settings_from",
    "reset_active_settings",
]
