"""
Closing configuration schema.

Defines the typed, frozen settings object the Closing Period Manager,
Revision workflow and Approval engine receive at construction.  YAML files
are parsed into these types by ``ledger_config.loader``; nothing in the
kernel reads files or environment variables itself.

Key distinction:
  closing.yaml     = source artifact (human-authored, reviewable)
  ClosingSettings  = runtime artifact (validated, frozen, passed explicitly)
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any

from ledger_kernel.domain.approval import ApprovalRuleInfo
from ledger_kernel.domain.values import ClosingMode, PeriodType

# ---------------------------------------------------------------------------
# Checklist vocabulary
# ---------------------------------------------------------------------------

JOURNAL_BALANCE = "jurnal_balance"
ALL_POSTED = "all_posted"
BANK_RECONCILIATION = "bank_reconciliation"
CASH_OPNAME = "cash_opname"
INVENTORY_COUNT = "inventory_count"

CHECKLIST_LABELS: dict[str, str] = {
    JOURNAL_BALANCE: "All posted journals balanced",
    ALL_POSTED: "All journals posted",
    BANK_RECONCILIATION: "Bank accounts reconciled",
    CASH_OPNAME: "Cash opname completed",
    INVENTORY_COUNT: "Inventory count completed",
}

# Items the ledger can evaluate itself; the rest are attested manually
AUTO_CHECKLIST_ITEMS = frozenset({JOURNAL_BALANCE, ALL_POSTED})


@dataclass(frozen=True)
class ChecklistItemDef:
    item_key: str
    label: str
    is_required: bool = True

    def __post_init__(self) -> None:
        if not self.item_key:
            raise ValueError("Checklist item_key must not be empty")


@dataclass(frozen=True)
class PeriodTemplateDef:
    """Reusable period shape: cutoff offsets plus a checklist."""

    code: str
    name: str
    period_type: PeriodType
    cutoff_days: int
    hard_close_days: int | None = None
    checklist: tuple[ChecklistItemDef, ...] = ()
    is_default: bool = False
    description: str | None = None

    def __post_init__(self) -> None:
        if self.cutoff_days < 0:
            raise ValueError(f"Template {self.code}: cutoff_days must be >= 0")
        if self.hard_close_days is not None and self.hard_close_days < 0:
            raise ValueError(f"Template {self.code}: hard_close_days must be >= 0")
        keys = [item.item_key for item in self.checklist]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Template {self.code}: duplicate checklist keys")


@dataclass(frozen=True)
class ApprovalRuleDef:
    """Approval rule as authored in configuration."""

    name: str
    entity_type: str
    approval_type: str
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    approval_levels: int = 1
    approver_roles: tuple[str, ...] = ()
    escalation_hours: int | None = None
    conditions: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    is_active: bool = True

    def __post_init__(self) -> None:
        if self.approval_levels < 1:
            raise ValueError(f"Rule {self.name}: approval_levels must be >= 1")
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError(f"Rule {self.name}: min_amount exceeds max_amount")
        if self.escalation_hours is not None and self.escalation_hours <= 0:
            raise ValueError(f"Rule {self.name}: escalation_hours must be positive")

    def to_info(self) -> ApprovalRuleInfo:
        return ApprovalRuleInfo(
            name=self.name,
            entity_type=self.entity_type,
            approval_type=self.approval_type,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
            approval_levels=self.approval_levels,
            approver_roles=self.approver_roles,
            escalation_hours=self.escalation_hours,
            conditions=dict(self.conditions),
            is_active=self.is_active,
            description=self.description,
        )


@dataclass(frozen=True)
class ClosingSettings:
    """
    Process-wide closing policy.

    Contract:
        Passed explicitly to ClosingPeriodService, RevisionService,
        ApprovalService and the ledger.  Tests build isolated instances with
        ``with_overrides``.
    """

    closing_module_enabled: bool = True
    closing_mode: ClosingMode = ClosingMode.SOFT_AND_HARD
    auto_create_period: bool = False

    default_cutoff_days: int = 5
    default_hard_close_days: int | None = 15
    warning_days_before_cutoff: int = 3

    require_all_posted: bool = True
    require_all_balanced: bool = True
    require_bank_reconciliation: bool = True
    require_cash_opname: bool = False
    require_inventory_count: bool = False

    require_approval_after_soft_close: bool = True
    approve_all_revisions: bool = False
    material_threshold: Decimal = Decimal("1000000")
    high_value_threshold: Decimal = Decimal("10000000")

    allow_reopen_hard_close: bool = False
    allow_posting_without_period: bool = True

    default_escalation_role: str | None = "manager_keuangan"

    revision_reason_min_length: int = 20
    reject_notes_min_length: int = 10
    reopen_reason_min_length: int = 10

    templates: tuple[PeriodTemplateDef, ...] = ()
    approval_rules: tuple[ApprovalRuleDef, ...] = ()

    def __post_init__(self) -> None:
        if self.default_cutoff_days < 0:
            raise ValueError("default_cutoff_days must be >= 0")
        if self.default_hard_close_days is not None and self.default_hard_close_days < 0:
            raise ValueError("default_hard_close_days must be >= 0")
        if self.warning_days_before_cutoff < 0:
            raise ValueError("warning_days_before_cutoff must be >= 0")
        if self.material_threshold < 0 or self.high_value_threshold < 0:
            raise ValueError("thresholds must be >= 0")
        for name in (
            "revision_reason_min_length",
            "reject_notes_min_length",
            "reopen_reason_min_length",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        codes = [t.code for t in self.templates]
        if len(codes) != len(set(codes)):
            raise ValueError("duplicate period template codes")
        names = [r.name for r in self.approval_rules]
        if len(names) != len(set(names)):
            raise ValueError("duplicate approval rule names")

    @property
    def is_active(self) -> bool:
        """True when period admission and closing checks are enforced."""
        return self.closing_module_enabled and self.closing_mode != ClosingMode.DISABLED

    @property
    def hard_close_enabled(self) -> bool:
        return self.closing_mode == ClosingMode.SOFT_AND_HARD

    def template(self, code: str) -> PeriodTemplateDef | None:
        for template in self.templates:
            if template.code == code:
                return template
        return None

    def default_template(self, period_type: PeriodType) -> PeriodTemplateDef | None:
        candidates = [t for t in self.templates if t.period_type == period_type]
        for template in candidates:
            if template.is_default:
                return template
        return candidates[0] if candidates else None

    def required_validation_items(self) -> tuple[str, ...]:
        """Checklist keys the settings make mandatory for every soft close."""
        flags = (
            (ALL_POSTED, self.require_all_posted),
            (JOURNAL_BALANCE, self.require_all_balanced),
            (BANK_RECONCILIATION, self.require_bank_reconciliation),
            (CASH_OPNAME, self.require_cash_opname),
            (INVENTORY_COUNT, self.require_inventory_count),
        )
        return tuple(key for key, enabled in flags if enabled)

    def with_overrides(self, **changes: Any) -> ClosingSettings:
        return replace(self, **changes)
