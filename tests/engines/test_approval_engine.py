"""
Tests for the pure approval rule selection engine.

Tests cover:
- condition_matches / matched_condition_count: scalar and list conditions
- rule_matches: entity/type filters, inactive rules, inclusive bands
- select_matching_rule: tightest band wins, tie-breaks, no match
- actor_may_decide: level roles, senior roles, escalation ownership
- LEDGER_ENGINE_TRACE emission
"""

from decimal import Decimal

from ledger_engines.approval import (
    actor_may_decide,
    condition_matches,
    matched_condition_count,
    rule_matches,
    select_matching_rule,
)
from ledger_kernel.domain.approval import ApprovalRuleInfo

SUPERVISOR = "supervisor_keuangan"
MANAGER = "manager_keuangan"
DIRECTOR = "direktur_keuangan"


# =========================================================================
# Factory helpers
# =========================================================================


def make_rule(
    name: str = "default-rule",
    entity_type: str = "cash_transaction",
    approval_type: str = "transaction",
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    approval_levels: int = 1,
    approver_roles: tuple[str, ...] = (SUPERVISOR,),
    conditions: dict | None = None,
    is_active: bool = True,
) -> ApprovalRuleInfo:
    return ApprovalRuleInfo(
        name=name,
        entity_type=entity_type,
        approval_type=approval_type,
        min_amount=min_amount,
        max_amount=max_amount,
        approval_levels=approval_levels,
        approver_roles=approver_roles,
        conditions=conditions or {},
        is_active=is_active,
    )


def select(rules, amount, context=None, entity_type="cash_transaction", approval_type="transaction"):
    return select_matching_rule(
        rules,
        entity_type=entity_type,
        approval_type=approval_type,
        amount=amount,
        context=context,
    )


# =========================================================================
# Condition matching
# =========================================================================


class TestConditionMatching:
    """Scalar conditions compare equal; list conditions test membership."""

    def test_scalar_condition(self):
        assert condition_matches("out", "out")
        assert not condition_matches("out", "in")

    def test_list_condition(self):
        assert condition_matches(["bank", "giro"], "giro")
        assert not condition_matches(["bank", "giro"], "cash")

    def test_absent_context_keys_do_not_constrain(self):
        rule = make_rule(conditions={"direction": "out", "channel": "bank"})
        assert matched_condition_count(rule, {"direction": "out"}) == 1
        assert matched_condition_count(rule, {}) == 0
        assert matched_condition_count(rule, None) == 0

    def test_violated_condition_returns_none(self):
        rule = make_rule(conditions={"direction": "out"})
        assert matched_condition_count(rule, {"direction": "in"}) is None


class TestRuleMatches:
    def test_entity_and_type_must_match(self):
        rule = make_rule()
        assert rule_matches(rule, "cash_transaction", "transaction", None)
        assert not rule_matches(rule, "purchase_invoice", "transaction", None)
        assert not rule_matches(rule, "cash_transaction", "journal_revision", None)

    def test_inactive_rule_never_matches(self):
        assert not rule_matches(make_rule(is_active=False), "cash_transaction", "transaction", None)

    def test_band_is_inclusive(self):
        rule = make_rule(min_amount=Decimal("5000000"), max_amount=Decimal("9999999.99"))
        assert rule_matches(rule, "cash_transaction", "transaction", Decimal("5000000"))
        assert rule_matches(rule, "cash_transaction", "transaction", Decimal("9999999.99"))
        assert not rule_matches(rule, "cash_transaction", "transaction", Decimal("10000000"))

    def test_condition_violation_excludes_rule(self):
        rule = make_rule(conditions={"direction": "out"})
        assert not rule_matches(rule, "cash_transaction", "transaction", None, {"direction": "in"})


# =========================================================================
# Rule selection
# =========================================================================


class TestSelectMatchingRule:
    def test_no_rules_returns_none(self):
        assert select([], Decimal("100")) is None

    def test_no_matching_band_returns_none(self):
        rules = [make_rule(min_amount=Decimal("5000000"))]
        assert select(rules, Decimal("4999999")) is None

    def test_tightest_band_wins(self):
        wide = make_rule("wide", min_amount=Decimal("1000000"), max_amount=Decimal("100000000"))
        narrow = make_rule("narrow", min_amount=Decimal("5000000"), max_amount=Decimal("9999999.99"))
        assert select([wide, narrow], Decimal("6000000")).name == "narrow"

    def test_unbounded_band_loses_to_bounded(self):
        open_ended = make_rule("open", min_amount=Decimal("10000000"))
        bounded = make_rule("bounded", min_amount=Decimal("0"), max_amount=Decimal("50000000"))
        assert select([open_ended, bounded], Decimal("20000000")).name == "bounded"

    def test_only_open_ended_rule_above_threshold(self):
        lower = make_rule("lower", min_amount=Decimal("5000000"), max_amount=Decimal("9999999.99"))
        upper = make_rule("upper", min_amount=Decimal("10000000"), approval_levels=2)
        chosen = select([lower, upper], Decimal("12000000"))
        assert chosen.name == "upper"
        assert chosen.approval_levels == 2

    def test_more_specific_conditions_break_ties(self):
        generic = make_rule("generic", min_amount=Decimal("0"), max_amount=Decimal("10"))
        specific = make_rule(
            "specific",
            min_amount=Decimal("0"),
            max_amount=Decimal("10"),
            conditions={"direction": "out"},
        )
        assert select([generic, specific], Decimal("5"), {"direction": "out"}).name == "specific"

    def test_higher_minimum_breaks_equal_width(self):
        low = make_rule("low", min_amount=Decimal("0"), max_amount=Decimal("10"))
        high = make_rule("high", min_amount=Decimal("5"), max_amount=Decimal("15"))
        assert select([low, high], Decimal("7")).name == "high"

    def test_name_is_final_tie_break(self):
        b = make_rule("b-rule")
        a = make_rule("a-rule")
        assert select([b, a], None).name == "a-rule"

    def test_selection_is_order_independent(self):
        rules = [
            make_rule("r1", min_amount=Decimal("0"), max_amount=Decimal("100")),
            make_rule("r2", min_amount=Decimal("50"), max_amount=Decimal("100")),
            make_rule("r3", min_amount=Decimal("50")),
        ]
        assert select(rules, Decimal("75")).name == select(list(reversed(rules)), Decimal("75")).name

    def test_emits_engine_trace(self, captured_logs):
        select([make_rule()], None)

        traces = [r for r in captured_logs() if r["message"] == "LEDGER_ENGINE_TRACE"]
        assert len(traces) == 1
        assert traces[0]["logger"] == "ledger_kernel.engines.tracer"
        assert traces[0]["engine_name"] == "approval_rule_selection"
        assert len(traces[0]["input_fingerprint"]) == 16


# =========================================================================
# Approver eligibility
# =========================================================================


class TestActorMayDecide:
    def test_level_role_qualifies(self):
        rule = make_rule(approver_roles=(SUPERVISOR, MANAGER))
        assert actor_may_decide([SUPERVISOR], rule, 1)
        assert not actor_may_decide([SUPERVISOR], rule, 2)

    def test_senior_role_may_decide_junior_level(self):
        rule = make_rule(approver_roles=(SUPERVISOR, MANAGER))
        assert actor_may_decide([MANAGER], rule, 1)

    def test_unrelated_role_rejected(self):
        rule = make_rule(approver_roles=(SUPERVISOR, MANAGER))
        assert not actor_may_decide(["kasir"], rule, 1)

    def test_escalated_approval_belongs_to_escalation_role(self):
        rule = make_rule(approver_roles=(SUPERVISOR, MANAGER))
        assert actor_may_decide([DIRECTOR], rule, 1, escalated_to=DIRECTOR)
        assert not actor_may_decide([MANAGER], rule, 1, escalated_to=DIRECTOR)

    def test_rule_without_roles_accepts_anyone(self):
        assert actor_may_decide([], make_rule(approver_roles=()), 1)
        assert actor_may_decide(["kasir"], None, 1)
