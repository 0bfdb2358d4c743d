"""
Tests para agent/state.py y agent/store.py — Transiciones e invariantes.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from agent import state as transitions
from agent.errors import NotFound, RejectedEntry
from agent.models import (
    ApprovalRequest,
    ApprovalResolution,
    Decision,
    RevenueEntry,
    Ticket,
    TicketPriority,
    TicketStatus,
)
from agent.samples import sample_state
from agent.state import WorkflowState, ledger_total
from agent.store import WorkflowStore

NOW = datetime(2026, 2, 21, 12, 0, tzinfo=timezone.utc)
LATER = datetime(2026, 2, 21, 13, 0, tzinfo=timezone.utc)


def _resolution(decision=Decision.APPROVED, status=TicketStatus.RESOLVED):
    return ApprovalResolution(
        decision=decision,
        customer_response="Done.",
        resolution_notes="notes",
        operator_notes="notes",
        action_taken=decision.value,
        new_status=status,
    )


class TestTickets:
    def test_insert_sets_created_at(self):
        state = transitions.upsert_ticket(
            WorkflowState(), Ticket(ticket_id="TKT-1", subject="Help"), NOW
        )
        assert len(state.tickets) == 1
        assert state.tickets[0].created_at == NOW

    def test_missing_id_is_rejected(self):
        with pytest.raises(RejectedEntry):
            transitions.upsert_ticket(WorkflowState(), Ticket(subject="x"), NOW)

    def test_merge_only_overwrites_sent_fields(self):
        state = transitions.upsert_ticket(
            WorkflowState(),
            Ticket(ticket_id="TKT-1", subject="Help", priority="high"),
            NOW,
        )
        state = transitions.upsert_ticket(
            state, Ticket.model_validate({"ticket_id": "TKT-1", "status": "resolved"}), LATER
        )
        ticket = state.tickets[0]
        assert len(state.tickets) == 1
        assert ticket.status == TicketStatus.RESOLVED
        assert ticket.subject == "Help"
        assert ticket.priority == TicketPriority.HIGH
        assert ticket.created_at == NOW

    def test_unknown_status_does_not_overwrite(self):
        state = transitions.upsert_ticket(
            WorkflowState(), Ticket(ticket_id="T1", status="pending_approval"), NOW
        )
        state = transitions.upsert_ticket(
            state, Ticket.model_validate({"ticket_id": "T1", "status": "escalated"}), LATER
        )
        assert state.tickets[0].status == TicketStatus.PENDING_APPROVAL

    def test_unknown_status_on_insert_uses_default(self):
        ticket = Ticket.model_validate({"ticket_id": "T1", "status": "escalated"})
        assert "status" not in ticket.model_fields_set
        state = transitions.upsert_ticket(WorkflowState(), ticket, NOW)
        assert state.tickets[0].status == TicketStatus.OPEN

    def test_identical_update_changes_nothing(self):
        ticket = Ticket(ticket_id="TKT-1", subject="Help")
        state = transitions.upsert_ticket(WorkflowState(), ticket, NOW)
        again = transitions.upsert_ticket(state, ticket, LATER)
        assert again.tickets == state.tickets

    def test_original_state_untouched(self):
        original = WorkflowState()
        transitions.upsert_ticket(original, Ticket(ticket_id="TKT-1"), NOW)
        assert original.tickets == ()

    def test_set_status_on_missing_ticket_is_noop(self):
        state = WorkflowState()
        assert transitions.set_ticket_status(state, "TKT-404", TicketStatus.RESOLVED) is state


class TestApprovals:
    def test_enqueue_sets_timestamp_and_fallback_name(self):
        state = transitions.enqueue_approval(
            WorkflowState(), ApprovalRequest(order_id="#1"), NOW, "Ana"
        )
        entry = state.pending_approvals[0]
        assert entry.timestamp == NOW
        assert entry.customer_name == "Ana"

    def test_agent_name_wins_over_fallback(self):
        state = transitions.enqueue_approval(
            WorkflowState(),
            ApprovalRequest(order_id="#1", customer_name="Sarah"),
            NOW,
            "Customer",
        )
        assert state.pending_approvals[0].customer_name == "Sarah"

    def test_missing_order_id_is_rejected(self):
        with pytest.raises(RejectedEntry):
            transitions.enqueue_approval(WorkflowState(), ApprovalRequest(), NOW, "x")

    def test_duplicate_order_id_replaces_in_place(self):
        state = WorkflowState()
        for order_id in ("#1", "#2"):
            state = transitions.enqueue_approval(
                state, ApprovalRequest(order_id=order_id, summary="old"), NOW, "x"
            )
        state = transitions.enqueue_approval(
            state, ApprovalRequest(order_id="#1", summary="new"), LATER, "x"
        )
        assert [r.order_id for r in state.pending_approvals] == ["#1", "#2"]
        assert state.pending_approvals[0].summary == "new"
        assert state.pending_approvals[0].timestamp == LATER

    def test_resolve_moves_request_and_syncs_ticket(self):
        state = transitions.upsert_ticket(WorkflowState(), Ticket(ticket_id="TKT-1"), NOW)
        state = transitions.enqueue_approval(
            state, ApprovalRequest(order_id="#1", ticket_id="TKT-1"), NOW, "x"
        )
        state = transitions.resolve_approval(state, "#1", _resolution(), LATER)

        assert state.pending_approvals == ()
        assert len(state.resolved_approvals) == 1
        assert state.resolved_approvals[0].resolved_at == LATER
        assert state.resolved_approvals[0].request.order_id == "#1"
        assert state.tickets[0].status == TicketStatus.RESOLVED

    def test_resolve_with_unknown_ticket_only_moves_request(self):
        state = transitions.enqueue_approval(
            WorkflowState(), ApprovalRequest(order_id="#1", ticket_id="TKT-X"), NOW, "x"
        )
        state = transitions.resolve_approval(state, "#1", _resolution(), LATER)
        assert state.tickets == ()
        assert len(state.resolved_approvals) == 1

    def test_resolve_missing_raises_not_found(self):
        with pytest.raises(NotFound) as exc:
            transitions.resolve_approval(WorkflowState(), "#9", _resolution(), NOW)
        assert exc.value.order_id == "#9"


class TestRevenue:
    def test_allocation_from_percentage(self):
        state = transitions.record_revenue(
            WorkflowState(), RevenueEntry(amount=97, product="Concierge"), NOW, 20
        )
        assert state.revenue_entries[0].pro_fund_allocation == pytest.approx(19.4)
        assert state.pro_fund_balance == pytest.approx(19.4)
        assert state.conversion_count == 1
        assert state.revenue_entries[0].timestamp == NOW

    def test_explicit_allocation_is_kept(self):
        state = transitions.record_revenue(
            WorkflowState(),
            RevenueEntry(amount=100, pro_fund_allocation=5),
            NOW,
            20,
        )
        assert state.pro_fund_balance == pytest.approx(5)

    def test_balance_matches_ledger(self):
        state = WorkflowState()
        for amount in (97, 25, 12.5):
            state = transitions.record_revenue(state, RevenueEntry(amount=amount), NOW, 20)
        assert state.pro_fund_balance == pytest.approx(ledger_total(state))
        assert state.conversion_count == 3

    def test_non_numeric_amount_is_rejected(self):
        entry = RevenueEntry.model_construct(amount="97", product="X")
        with pytest.raises(RejectedEntry) as exc:
            transitions.record_revenue(WorkflowState(), entry, NOW, 20)
        assert exc.value.kind == "revenue_entry"


class TestStore:
    def test_failed_transition_keeps_state(self, store):
        before = store.state
        with pytest.raises(NotFound):
            store.resolve_approval("#1", _resolution(), NOW)
        assert store.state is before

    def test_enqueue_reports_replacement(self, store):
        _, replaced = store.enqueue_approval(ApprovalRequest(order_id="#1"), NOW, "x")
        assert replaced is False
        _, replaced = store.enqueue_approval(ApprovalRequest(order_id="#1"), NOW, "x")
        assert replaced is True
        assert len(store.pending_approvals) == 1

    def test_record_revenue_returns_recorded_entry(self, store):
        recorded = store.record_revenue(RevenueEntry(amount=50), NOW, 10)
        assert recorded.pro_fund_allocation == pytest.approx(5)

    def test_stats_on_empty_store(self, store):
        assert store.stats() == {
            "active_ticket_count": 0,
            "total_revenue": 0,
            "pending_approval_count": 0,
            "resolved_approval_count": 0,
            "pro_fund_balance": 0.0,
            "conversion_count": 0,
        }

    def test_resolved_and_denied_tickets_are_not_active(self, store):
        for ticket_id, status in [("T1", "open"), ("T2", "resolved"), ("T3", "denied")]:
            store.upsert_ticket(Ticket(ticket_id=ticket_id, status=status), NOW)
        assert store.stats()["active_ticket_count"] == 1

    def test_reset(self, store):
        store.load(sample_state())
        store.reset()
        assert store.state == WorkflowState()


class TestSampleData:
    def test_dashboard_numbers(self):
        stats = WorkflowStore(sample_state()).stats()
        assert stats["active_ticket_count"] == 3
        assert stats["total_revenue"] == pytest.approx(219)
        assert stats["pending_approval_count"] == 2
        assert stats["pro_fund_balance"] == pytest.approx(43.8)
        assert stats["conversion_count"] == 3

    def test_balance_matches_ledger(self):
        state = sample_state()
        assert state.pro_fund_balance == pytest.approx(ledger_total(state))

    def test_keys_are_unique(self):
        state = sample_state()
        ticket_ids = [t.ticket_id for t in state.tickets]
        order_ids = [r.order_id for r in state.pending_approvals]
        assert len(ticket_ids) == len(set(ticket_ids))
        assert len(order_ids) == len(set(order_ids))
