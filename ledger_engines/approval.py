"""
ledger_engines.approval -- Pure approval rule selection.

Responsibility:
    Given the active approval rules, pick the one that governs an
    (entity_type, approval_type, amount, context) request, and answer
    whether an actor's roles qualify for a level.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import ledger_kernel/domain/ types.

Invariants enforced:
    - Amount bands are inclusive at both ends; None bounds are open.
    - The tightest band wins.  An unbounded max counts as infinitely wide.
    - Ties: most matched condition keys, then higher min_amount, then name.
      The ordering is total, so selection is deterministic.
    - Condition semantics: a scalar must equal the context value; a list
      must contain it.  Keys absent from the context do not constrain.
    - Purity: no clock access, no I/O, no database.

Failure modes:
    - Returns None when no active rule matches (approval not required).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from ledger_engines.tracer import traced_engine
from ledger_kernel.domain.approval import ApprovalRuleInfo


def condition_matches(expected: Any, actual: Any) -> bool:
    if isinstance(expected, (list, tuple, set, frozenset)):
        return actual in expected
    return actual == expected


def matched_condition_count(
    rule: ApprovalRuleInfo,
    context: Mapping[str, Any] | None,
) -> int | None:
    """
    Number of rule conditions the context positively satisfies.

    Returns None if any condition present in the context is violated.
    """
    context = context or {}
    matched = 0
    for key, expected in rule.conditions.items():
        if key not in context:
            continue
        if not condition_matches(expected, context[key]):
            return None
        matched += 1
    return matched


def rule_matches(
    rule: ApprovalRuleInfo,
    entity_type: str,
    approval_type: str,
    amount: Decimal | None,
    context: Mapping[str, Any] | None = None,
) -> bool:
    if not rule.is_active:
        return False
    if rule.entity_type != entity_type or rule.approval_type != approval_type:
        return False
    if not rule.contains(amount):
        return False
    return matched_condition_count(rule, context) is not None


def _specificity_key(rule: ApprovalRuleInfo, matched: int) -> tuple:
    width = rule.band_width
    return (
        width is None,
        width if width is not None else Decimal("0"),
        -matched,
        -(rule.min_amount if rule.min_amount is not None else Decimal("-1")),
        rule.name,
    )


@traced_engine(
    "approval_rule_selection",
    "1.0",
    fingerprint_fields=("entity_type", "approval_type", "amount", "context"),
)
def select_matching_rule(
    rules: Iterable[ApprovalRuleInfo],
    *,
    entity_type: str,
    approval_type: str,
    amount: Decimal | None,
    context: Mapping[str, Any] | None = None,
) -> ApprovalRuleInfo | None:
    """Select the best-matching active rule, or None if approval is not required."""
    candidates = []
    for rule in rules:
        if not rule_matches(rule, entity_type, approval_type, amount, context):
            continue
        matched = matched_condition_count(rule, context) or 0
        candidates.append((_specificity_key(rule, matched), rule))

    if not candidates:
        return None
    candidates.sort(key=lambda pair: pair[0])
    return candidates[0][1]


def actor_may_decide(
    actor_roles: Iterable[str],
    rule: ApprovalRuleInfo | None,
    level: int,
    escalated_to: str | None = None,
) -> bool:
    """
    True if any of ``actor_roles`` qualifies for ``level``.

    An escalated approval belongs to its escalation role.  A rule without
    roles, or no rule, accepts any role.
    """
    roles = set(actor_roles)
    if escalated_to is not None:
        return escalated_to in roles
    if rule is None:
        return True
    eligible = rule.eligible_roles(level)
    if not eligible:
        return True
    return bool(roles.intersection(eligible))
