"""
Workflow State — Estado inmutable de la sesión y sus transiciones puras.

Cada transición es una función `(state, evento) -> state'` que devuelve un
WorkflowState nuevo o lanza un error de agent.errors sin tocar el estado
original. El store solo publica el estado nuevo cuando la transición
terminó, así ningún lector ve una aplicación parcial.

Invariantes:
- ticket_id único en `tickets`
- order_id único en `pending_approvals`
- una solicitud nunca está en pending y resolved a la vez
- pro_fund_balance == suma de pro_fund_allocation del ledger
"""

import math
from datetime import datetime
from typing import Any, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from agent.errors import NotFound, RejectedEntry
from agent.models import (
    ApprovalRequest,
    ApprovalResolution,
    ChatMessage,
    ResolvedApproval,
    RevenueEntry,
    Ticket,
    TicketStatus,
)


class WorkflowState(BaseModel):
    """Snapshot completo del estado de workflow de una sesión."""

    model_config = ConfigDict(frozen=True)

    messages: Tuple[ChatMessage, ...] = ()
    tickets: Tuple[Ticket, ...] = ()
    pending_approvals: Tuple[ApprovalRequest, ...] = ()
    resolved_approvals: Tuple[ResolvedApproval, ...] = ()
    revenue_entries: Tuple[RevenueEntry, ...] = ()
    pro_fund_balance: float = 0.0
    conversion_count: int = 0


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def find_ticket_index(state: WorkflowState, ticket_id: str) -> Optional[int]:
    for i, ticket in enumerate(state.tickets):
        if ticket.ticket_id == ticket_id:
            return i
    return None


def find_pending_index(state: WorkflowState, order_id: str) -> Optional[int]:
    for i, request in enumerate(state.pending_approvals):
        if request.order_id == order_id:
            return i
    return None


def ledger_total(state: WorkflowState) -> float:
    """Suma del ledger, para verificar el invariante del balance."""
    return math.fsum(entry.pro_fund_allocation or 0.0 for entry in state.revenue_entries)


# Transcript


def append_message(state: WorkflowState, message: ChatMessage) -> WorkflowState:
    return state.model_copy(update={"messages": state.messages + (message,)})


# Tickets


def upsert_ticket(state: WorkflowState, ticket: Ticket, now: datetime) -> WorkflowState:
    """
    Inserta o actualiza un ticket por `ticket_id`.

    Merge superficial: solo los campos que el agente envió pisan los
    existentes; `created_at` se conserva siempre. Un ticket nuevo recibe
    `created_at = now`.
    """
    if not ticket.ticket_id:
        raise RejectedEntry("ticket", "ticket_id is missing")

    index = find_ticket_index(state, ticket.ticket_id)
    if index is None:
        created = ticket.model_copy(update={"created_at": now})
        return state.model_copy(update={"tickets": state.tickets + (created,)})

    existing = state.tickets[index]
    incoming = ticket.model_dump(exclude_unset=True, exclude={"ticket_id", "created_at"})
    merged = existing.model_copy(update=incoming)
    if merged == existing:
        return state

    tickets = state.tickets[:index] + (merged,) + state.tickets[index + 1 :]
    return state.model_copy(update={"tickets": tickets})


def set_ticket_status(
    state: WorkflowState, ticket_id: str, status: TicketStatus
) -> WorkflowState:
    """Cambia el estado de un ticket existente. Si no existe, no hace nada."""
    index = find_ticket_index(state, ticket_id)
    if index is None:
        return state
    updated = state.tickets[index].model_copy(update={"status": status})
    tickets = state.tickets[:index] + (updated,) + state.tickets[index + 1 :]
    return state.model_copy(update={"tickets": tickets})


# Aprobaciones


def enqueue_approval(
    state: WorkflowState,
    request: ApprovalRequest,
    now: datetime,
    customer_name_fallback: str,
) -> WorkflowState:
    """
    Agrega una solicitud al pending set.

    Si ya hay una pendiente con el mismo `order_id`, se reemplaza en su
    lugar (misma posición en la cola, campos y timestamp nuevos).
    """
    if not request.order_id:
        raise RejectedEntry("approval_request", "order_id is missing")

    entry = request.model_copy(
        update={
            "timestamp": now,
            "customer_name": request.customer_name or customer_name_fallback,
        }
    )

    index = find_pending_index(state, request.order_id)
    if index is None:
        pending = state.pending_approvals + (entry,)
    else:
        pending = (
            state.pending_approvals[:index]
            + (entry,)
            + state.pending_approvals[index + 1 :]
        )
    return state.model_copy(update={"pending_approvals": pending})


def resolve_approval(
    state: WorkflowState,
    order_id: str,
    resolution: ApprovalResolution,
    now: datetime,
) -> WorkflowState:
    """
    Mueve una solicitud del pending set al log de resueltas.

    Si la solicitud tenía `ticket_id`, el ticket pasa a `resolution.new_status`.
    Lanza NotFound si ya no está pendiente (el estado no cambia).
    """
    index = find_pending_index(state, order_id)
    if index is None:
        raise NotFound(order_id)

    request = state.pending_approvals[index]
    resolved = ResolvedApproval(
        request=request,
        decision=resolution.decision,
        customer_response=resolution.customer_response,
        resolution_notes=resolution.resolution_notes,
        operator_notes=resolution.operator_notes,
        action_taken=resolution.action_taken,
        resolved_at=now,
    )

    next_state = state.model_copy(
        update={
            "pending_approvals": state.pending_approvals[:index]
            + state.pending_approvals[index + 1 :],
            "resolved_approvals": state.resolved_approvals + (resolved,),
        }
    )
    if request.ticket_id:
        next_state = set_ticket_status(next_state, request.ticket_id, resolution.new_status)
    return next_state


# Revenue / Pro Fund


def record_revenue(
    state: WorkflowState,
    entry: RevenueEntry,
    now: datetime,
    pro_fund_percentage: float,
) -> WorkflowState:
    """
    Registra una venta en el ledger y actualiza balance y conversiones.

    Si el agente no manda `pro_fund_allocation` se calcula como
    `amount * pro_fund_percentage / 100`.
    """
    if not _is_number(entry.amount):
        raise RejectedEntry("revenue_entry", f"amount is not numeric ({entry.amount!r})")

    allocation = entry.pro_fund_allocation
    if allocation is None:
        allocation = entry.amount * pro_fund_percentage / 100
    elif not _is_number(allocation):
        raise RejectedEntry(
            "revenue_entry", f"pro_fund_allocation is not numeric ({allocation!r})"
        )

    recorded = entry.model_copy(
        update={"pro_fund_allocation": allocation, "timestamp": now}
    )
    return state.model_copy(
        update={
            "revenue_entries": state.revenue_entries + (recorded,),
            "pro_fund_balance": state.pro_fund_balance + allocation,
            "conversion_count": state.conversion_count + 1,
        }
    )
