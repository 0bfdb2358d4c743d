"""
Workflow Store — Dueño del estado de workflow de la sesión.

Guarda una única referencia al WorkflowState actual y la reemplaza solo
cuando una transición de agent.state termina sin error. Lo mutan
únicamente los dos controllers (chat y aprobaciones).
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

from agent import state as transitions
from agent.models import (
    ApprovalRequest,
    ApprovalResolution,
    ChatMessage,
    ResolvedApproval,
    RevenueEntry,
    Ticket,
    TicketStatus,
)
from agent.state import WorkflowState

logger = logging.getLogger(__name__)

# Estados que ya no cuentan como tickets activos en el dashboard
_CLOSED_STATUSES = {TicketStatus.RESOLVED, TicketStatus.DENIED}


class WorkflowStore:
    """Estado de workflow de una sesión con transiciones atómicas."""

    def __init__(self, initial: Optional[WorkflowState] = None):
        self._state = initial or WorkflowState()

    @property
    def state(self) -> WorkflowState:
        return self._state

    def apply(self, transition: Callable[..., WorkflowState], *args: Any) -> WorkflowState:
        """Aplica una transición pura y publica el resultado."""
        new_state = transition(self._state, *args)
        self._state = new_state
        return new_state

    def load(self, state: WorkflowState) -> None:
        self._state = state

    def reset(self) -> None:
        self._state = WorkflowState()
        logger.info("Store reseteado")

    # Transiciones

    def append_message(self, message: ChatMessage) -> ChatMessage:
        self.apply(transitions.append_message, message)
        return message

    def upsert_ticket(self, ticket: Ticket, now: datetime) -> Ticket:
        state = self.apply(transitions.upsert_ticket, ticket, now)
        index = transitions.find_ticket_index(state, ticket.ticket_id)
        logger.info(f"Ticket {ticket.ticket_id} guardado")
        return state.tickets[index]

    def enqueue_approval(
        self, request: ApprovalRequest, now: datetime, customer_name_fallback: str
    ) -> Tuple[ApprovalRequest, bool]:
        """Devuelve (solicitud encolada, si reemplazó una pendiente)."""
        replaced = (
            request.order_id is not None and self.find_pending(request.order_id) is not None
        )
        state = self.apply(
            transitions.enqueue_approval, request, now, customer_name_fallback
        )
        if replaced:
            logger.info(f"Aprobación {request.order_id} ya pendiente: se reemplaza")
        index = transitions.find_pending_index(state, request.order_id)
        return state.pending_approvals[index], replaced

    def record_revenue(
        self, entry: RevenueEntry, now: datetime, pro_fund_percentage: float
    ) -> RevenueEntry:
        state = self.apply(transitions.record_revenue, entry, now, pro_fund_percentage)
        recorded = state.revenue_entries[-1]
        logger.info(
            f"Venta registrada: {recorded.product} ${recorded.amount:.2f} "
            f"(Pro Fund +{recorded.pro_fund_allocation:.2f})"
        )
        return recorded

    def resolve_approval(
        self, order_id: str, resolution: ApprovalResolution, now: datetime
    ) -> ResolvedApproval:
        state = self.apply(transitions.resolve_approval, order_id, resolution, now)
        logger.info(f"Aprobación {order_id} resuelta: {resolution.decision.value}")
        return state.resolved_approvals[-1]

    # Lecturas

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return self._state.messages

    @property
    def tickets(self) -> Tuple[Ticket, ...]:
        return self._state.tickets

    @property
    def pending_approvals(self) -> Tuple[ApprovalRequest, ...]:
        return self._state.pending_approvals

    @property
    def resolved_approvals(self) -> Tuple[ResolvedApproval, ...]:
        return self._state.resolved_approvals

    @property
    def revenue_entries(self) -> Tuple[RevenueEntry, ...]:
        return self._state.revenue_entries

    @property
    def pro_fund_balance(self) -> float:
        return self._state.pro_fund_balance

    @property
    def conversion_count(self) -> int:
        return self._state.conversion_count

    def get_ticket(self, ticket_id: str) -> Optional[Ticket]:
        index = transitions.find_ticket_index(self._state, ticket_id)
        return None if index is None else self._state.tickets[index]

    def find_pending(self, order_id: str) -> Optional[ApprovalRequest]:
        index = transitions.find_pending_index(self._state, order_id)
        return None if index is None else self._state.pending_approvals[index]

    def stats(self) -> Dict[str, Any]:
        """Números del dashboard, calculados sobre un único snapshot."""
        snapshot = self._state
        return {
            "active_ticket_count": sum(
                1 for t in snapshot.tickets if t.status not in _CLOSED_STATUSES
            ),
            "total_revenue": sum(e.amount for e in snapshot.revenue_entries),
            "pending_approval_count": len(snapshot.pending_approvals),
            "resolved_approval_count": len(snapshot.resolved_approvals),
            "pro_fund_balance": snapshot.pro_fund_balance,
            "conversion_count": snapshot.conversion_count,
        }
