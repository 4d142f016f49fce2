"""
Tests for ApprovalService -- approval lifecycle management.

Covers:
- install_rules(): create then update by name
- submit(): rule selection, no rule, mandatory, open-approval dedupe
- approve(): single and multi-level, role gates
- reject(): terminal, blank reason
- escalate() / escalate_overdue(): due checks and target role
- Notifications and decision history
"""

from datetime import timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from ledger_kernel.domain.actor import Actor, Capability
from ledger_kernel.domain.values import ApprovalStatus, RecordKind, RecordRef
from ledger_kernel.exceptions import (
    AlreadyDecidedError,
    ApprovalNotFoundError,
    ApproverNotAuthorizedError,
    EscalationNotDueError,
    InsufficientCapabilityError,
    ReasonTooShortError,
)
from ledger_kernel.services.notifications import APPROVAL_DECIDED, APPROVAL_REQUESTED

SUPERVISOR_ROLE = "supervisor_keuangan"
MANAGER_ROLE = "manager_keuangan"

OUTGOING = {"transaction_type": "pengeluaran"}


@pytest.fixture
def approvals(orchestrator):
    return orchestrator.approvals


def cash_ref() -> RecordRef:
    return RecordRef(RecordKind.CASH_TRANSACTION, uuid4())


def submit_cash(approvals, amount, requester_id, conditions=OUTGOING, ref=None):
    return approvals.submit(
        ref or cash_ref(),
        "transaction",
        Decimal(amount),
        requester_id,
        conditions=conditions,
    )


class TestRules:
    def test_configured_rules_installed(self, approvals):
        names = [r.name for r in approvals.active_rules("cash_transaction", "transaction")]
        assert names == ["Cash Transaction - High Value", "Cash Transaction - Very High Value"]

    def test_reinstall_updates_by_name(self, approvals, default_settings, test_actor_id, captured_logs):
        installed = approvals.install_rules(test_actor_id, default_settings.approval_rules[:1])

        assert len(installed) == 1
        log = next(r for r in captured_logs() if r["message"] == "approval_rules_installed")
        assert log["rules_created"] == 0
        assert log["rules_updated"] == 1

    def test_evaluate_picks_highest_band(self, approvals):
        rule = approvals.evaluate("cash_transaction", "transaction", Decimal("30000000"), OUTGOING)
        assert rule.name == "Cash Transaction - Very High Value"

    def test_evaluate_condition_miss(self, approvals):
        rule = approvals.evaluate(
            "cash_transaction", "transaction", Decimal("30000000"), {"transaction_type": "penerimaan"}
        )
        assert rule is None


class TestSubmit:
    def test_single_level_request(self, approvals, test_actor_id, notifier, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)

        assert approval.status == ApprovalStatus.PENDING
        assert approval.rule_name == "Cash Transaction - High Value"
        assert approval.level == 1
        assert approval.required_levels == 1
        assert approval.required_role == SUPERVISOR_ROLE
        assert approval.expires_at == deterministic_clock.now() + timedelta(hours=24)

        requested = notifier.of(APPROVAL_REQUESTED)
        assert requested[0]["approval_id"] == str(approval.id)
        assert requested[0]["required_role"] == SUPERVISOR_ROLE

    def test_below_threshold_needs_no_approval(self, approvals, test_actor_id):
        assert submit_cash(approvals, "4999999.99", test_actor_id) is None

    def test_mandatory_without_rule(self, approvals, test_actor_id):
        approval = approvals.submit(
            RecordRef(RecordKind.JOURNAL_ENTRY, uuid4()),
            "manual_check",
            None,
            test_actor_id,
            mandatory=True,
        )
        assert approval.rule_name is None
        assert approval.required_levels == 1
        assert approval.required_role is None
        assert approval.expires_at is None

    def test_second_submit_returns_open_approval(self, approvals, test_actor_id):
        ref = cash_ref()
        first = submit_cash(approvals, "6000000", test_actor_id, ref=ref)
        second = submit_cash(approvals, "7000000", test_actor_id, ref=ref)

        assert second.id == first.id
        assert approvals.open_for(ref, "transaction").id == first.id


class TestDecisions:
    def test_supervisor_approves(self, approvals, test_actor_id, supervisor, notifier):
        approval = submit_cash(approvals, "6000000", test_actor_id)

        decided = approvals.approve(approval.id, supervisor, notes="Sesuai nota")

        assert decided.is_approved
        assert decided.approver_id == supervisor.id
        assert decided.notes == "Sesuai nota"
        assert notifier.of(APPROVAL_DECIDED)[0]["status"] == "approved"
        history = approvals.decisions(approval.id)
        assert [(d.level, d.decision) for d in history] == [(1, "approve")]

    def test_senior_role_may_decide_junior_level(self, approvals, test_actor_id, manager):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        assert approvals.approve(approval.id, manager).is_approved

    def test_multi_level(self, approvals, test_actor_id, supervisor, manager, deterministic_clock):
        approval = submit_cash(approvals, "30000000", test_actor_id)
        assert approval.required_levels == 2

        deterministic_clock.advance_hours(1)
        first = approvals.approve(approval.id, supervisor)
        assert first.status == ApprovalStatus.PENDING
        assert first.level == 2
        assert first.required_role == MANAGER_ROLE
        assert first.expires_at == deterministic_clock.now() + timedelta(hours=12)

        with pytest.raises(ApproverNotAuthorizedError) as exc_info:
            approvals.approve(approval.id, supervisor)
        assert exc_info.value.code == "APPROVER_NOT_AUTHORIZED"

        final = approvals.approve(approval.id, manager)
        assert final.is_approved
        assert [d.level for d in approvals.decisions(approval.id)] == [1, 2]

    def test_requires_approve_capability(self, approvals, test_actor_id):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        role_only = Actor.of(uuid4(), roles=[SUPERVISOR_ROLE])

        with pytest.raises(InsufficientCapabilityError):
            approvals.approve(approval.id, role_only)

    def test_requires_eligible_role(self, approvals, test_actor_id):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        cashier = Actor.of(uuid4(), roles=["kasir"], capabilities=[Capability.APPROVE])

        with pytest.raises(ApproverNotAuthorizedError):
            approvals.approve(approval.id, cashier)

    def test_reject_is_terminal(self, approvals, test_actor_id, supervisor, manager):
        approval = submit_cash(approvals, "30000000", test_actor_id)

        rejected = approvals.reject(approval.id, supervisor, "Tidak ada bukti pendukung")
        assert rejected.is_rejected
        assert rejected.notes == "Tidak ada bukti pendukung"

        with pytest.raises(AlreadyDecidedError):
            approvals.approve(approval.id, manager)

    def test_reject_needs_reason(self, approvals, test_actor_id, supervisor):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        with pytest.raises(ReasonTooShortError):
            approvals.reject(approval.id, supervisor, "   ")
        assert approvals.get(approval.id).is_open

    def test_unknown_approval(self, approvals, supervisor):
        with pytest.raises(ApprovalNotFoundError):
            approvals.approve(uuid4(), supervisor)

    def test_latest_for_after_decision(self, approvals, test_actor_id, supervisor):
        ref = cash_ref()
        approval = submit_cash(approvals, "6000000", test_actor_id, ref=ref)
        approvals.approve(approval.id, supervisor)

        assert approvals.open_for(ref, "transaction") is None
        assert approvals.latest_for(ref, "transaction").id == approval.id


class TestEscalation:
    def test_not_due_before_expiry(self, approvals, test_actor_id, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(23)

        with pytest.raises(EscalationNotDueError):
            approvals.escalate(approval.id)

    def test_escalates_to_next_role(self, approvals, test_actor_id, supervisor, manager, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(24)

        escalated = approvals.escalate(approval.id)

        assert escalated.status == ApprovalStatus.ESCALATED
        assert escalated.escalated_to == MANAGER_ROLE
        assert escalated.escalated_at == deterministic_clock.now()
        with pytest.raises(ApproverNotAuthorizedError):
            approvals.approve(approval.id, supervisor)
        assert approvals.approve(approval.id, manager).is_approved

    def test_explicit_target(self, approvals, test_actor_id, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(25)

        escalated = approvals.escalate(approval.id, escalated_to="direktur_keuangan")

        assert escalated.escalated_to == "direktur_keuangan"

    def test_falls_back_to_default_role(self, make_orchestrator, closing_settings, test_actor_id, deterministic_clock):
        approvals = make_orchestrator(
            closing_settings.with_overrides(default_escalation_role="direktur_keuangan")
        ).approvals
        approval = approvals.submit(
            RecordRef(RecordKind.CLOSING_PERIOD, uuid4()), "monthly_closing", None, test_actor_id
        )
        assert approval.rule_name == "Monthly Closing Approval"

        deterministic_clock.advance_hours(72)
        assert approvals.escalate(approval.id).escalated_to == "direktur_keuangan"

    def test_cannot_escalate_twice(self, approvals, test_actor_id, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(30)
        approvals.escalate(approval.id)

        with pytest.raises(EscalationNotDueError):
            approvals.escalate(approval.id)

    def test_cannot_escalate_decided(self, approvals, test_actor_id, supervisor, deterministic_clock):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        approvals.approve(approval.id, supervisor)
        deterministic_clock.advance_hours(30)

        with pytest.raises(AlreadyDecidedError):
            approvals.escalate(approval.id)

    def test_escalation_notifies(self, approvals, test_actor_id, deterministic_clock, notifier):
        approval = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(24)
        approvals.escalate(approval.id)

        escalations = [p for p in notifier.of(APPROVAL_REQUESTED) if p.get("escalated")]
        assert escalations[0]["required_role"] == MANAGER_ROLE

    def test_escalate_overdue_only_touches_expired(self, approvals, test_actor_id, deterministic_clock):
        overdue = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(20)
        fresh = submit_cash(approvals, "6000000", test_actor_id)
        deterministic_clock.advance_hours(5)

        escalated = approvals.escalate_overdue()

        assert [a.id for a in escalated] == [overdue.id]
        assert approvals.get(fresh.id).status == ApprovalStatus.PENDING
