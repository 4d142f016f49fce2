"""
Configuration Loader (``ledger_config.loader``).

Responsibility
--------------
Loads a closing configuration YAML file and parses it into the frozen
``ledger_config.schema`` types.  Runtime callers go through
``ledger_config.get_active_settings()``; tests call ``load_settings`` or
``parse_settings`` directly to build isolated configurations.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Amounts are parsed as ``Decimal`` from their string form, never via float.
* Unknown top-level settings keys are rejected, so a typo cannot silently
  fall back to a default.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Invalid values  -> ``ValueError`` from schema validation.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from ledger_config.schema import (
    CHECKLIST_LABELS,
    ApprovalRuleDef,
    ChecklistItemDef,
    ClosingSettings,
    PeriodTemplateDef,
)
from ledger_kernel.domain.values import ClosingMode, PeriodType

_SETTINGS_FIELDS = {
    f.name for f in fields(ClosingSettings) if f.name not in ("templates", "approval_rules")
}

_DECIMAL_FIELDS = {"material_threshold", "high_value_threshold"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML file and return its contents as a dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def parse_checklist_item(data: Any) -> ChecklistItemDef:
    """Accepts a bare key or a mapping with key/label/required."""
    if isinstance(data, str):
        return ChecklistItemDef(item_key=data, label=CHECKLIST_LABELS.get(data, data))
    key = data["key"]
    return ChecklistItemDef(
        item_key=key,
        label=data.get("label") or CHECKLIST_LABELS.get(key, key),
        is_required=bool(data.get("required", True)),
    )


def parse_template(data: dict[str, Any]) -> PeriodTemplateDef:
    return PeriodTemplateDef(
        code=data["code"],
        name=data["name"],
        period_type=PeriodType(data["period_type"]),
        cutoff_days=int(data["cutoff_days"]),
        hard_close_days=(
            int(data["hard_close_days"]) if data.get("hard_close_days") is not None else None
        ),
        checklist=tuple(parse_checklist_item(item) for item in data.get("checklist", ())),
        is_default=bool(data.get("is_default", False)),
        description=data.get("description"),
    )


def parse_approval_rule(data: dict[str, Any]) -> ApprovalRuleDef:
    return ApprovalRuleDef(
        name=data["name"],
        entity_type=data["entity_type"],
        approval_type=data["approval_type"],
        min_amount=parse_decimal(data.get("min_amount")),
        max_amount=parse_decimal(data.get("max_amount")),
        approval_levels=int(data.get("approval_levels", 1)),
        approver_roles=tuple(data.get("approver_roles", ())),
        escalation_hours=(
            int(data["escalation_hours"]) if data.get("escalation_hours") is not None else None
        ),
        conditions=dict(data.get("conditions") or {}),
        description=data.get("description"),
        is_active=bool(data.get("is_active", True)),
    )


def parse_settings(data: dict[str, Any]) -> ClosingSettings:
    """Build ClosingSettings from the parsed YAML document."""
    raw = dict(data.get("settings") or {})
    unknown = set(raw) - _SETTINGS_FIELDS
    if unknown:
        raise ValueError(f"Unknown closing settings: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for key, value in raw.items():
        if key in _DECIMAL_FIELDS:
            kwargs[key] = parse_decimal(value)
        elif key == "closing_mode":
            kwargs[key] = ClosingMode(value)
        else:
            kwargs[key] = value

    return ClosingSettings(
        **kwargs,
        templates=tuple(parse_template(t) for t in data.get("templates", ())),
        approval_rules=tuple(parse_approval_rule(r) for r in data.get("approval_rules", ())),
    )


def load_settings(path: Path) -> ClosingSettings:
    return parse_settings(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of a parsed configuration document."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
