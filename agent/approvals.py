"""
Approval Resolution Controller — Decisiones del operador sobre aprobaciones.

Flujo por order_id:
1. Validar que haya notas del operador (si no, no se llama al agente)
2. Marcar la orden como en proceso e invocar al agente de aprobaciones
3. Interpretar la respuesta y armar la resolución (con fallbacks)
4. Resolver en el store y sincronizar el ticket vinculado
5. Aviso temporizado de éxito o error; la marca se limpia siempre

Estados: PENDING_REVIEW → SUBMITTING → {RESOLVED, FAILED} → PENDING_REVIEW
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from agent.client import AgentClient
from agent.conversation import (
    APPROVAL_STATES,
    FAILED,
    PENDING_REVIEW,
    RESOLVED,
    SUBMITTING,
    ExchangeTracker,
)
from agent.errors import NotFound, RemoteCallFailure, ValidationFailure
from agent.interpreter import interpret
from agent.models import (
    AgentPayload,
    ApprovalOutcome,
    ApprovalRequest,
    ApprovalResolution,
    Decision,
    NoticeType,
    TicketStatus,
    default_status_for,
    normalize_choice,
    utc_now,
)
from agent.store import WorkflowStore

logger = logging.getLogger(__name__)


MISSING_NOTES = "Please add notes before processing this approval."
CONNECTION_ERROR = "Connection error while processing approval."
GENERIC_FAILURE = "Failed to process approval."
NO_LONGER_PENDING = "This approval is no longer pending. Refresh and try again."


def build_approval_message(
    request: ApprovalRequest, decision: Decision, notes: str
) -> str:
    """Mensaje para el agente de aprobaciones."""
    return (
        f"Process {decision.value} decision for {request.request_type.value} request. "
        f"Order: {request.order_id}. "
        f"Customer requested: {request.desired_outcome}. "
        f"Summary: {request.summary}. "
        f"Operator notes: {notes}. "
        f"Ticket: {request.ticket_id or 'N/A'}."
    )


def _text_or(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return fallback


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def resolution_from_reply(raw: Any, decision: Decision, notes: str) -> ApprovalResolution:
    """
    Arma la resolución desde la respuesta del agente.

    Cada campo cae a lo que decidió/escribió el operador si el agente no
    lo manda (o si no se pudo interpretar la respuesta).
    """
    interpreted = interpret(raw)
    data = interpreted.data if isinstance(interpreted, AgentPayload) else {}
    ticket_update = _section(data, "ticket_update")
    outcome_log = _section(data, "outcome_log")

    resolved_decision = decision
    if data.get("decision") is not None:
        try:
            resolved_decision = normalize_choice(data["decision"], Decision)
        except ValueError:
            logger.warning(f"Decisión desconocida del agente: {data['decision']!r}")

    new_status = default_status_for(resolved_decision)
    if ticket_update.get("new_status") is not None:
        try:
            new_status = normalize_choice(ticket_update["new_status"], TicketStatus)
        except ValueError:
            logger.warning(f"Estado de ticket desconocido: {ticket_update['new_status']!r}")

    return ApprovalResolution(
        decision=resolved_decision,
        customer_response=_text_or(
            data.get("customer_response"), f"Request {decision.value}."
        ),
        resolution_notes=_text_or(ticket_update.get("resolution_notes"), notes),
        operator_notes=_text_or(outcome_log.get("operator_notes"), notes),
        action_taken=_text_or(outcome_log.get("action_taken"), decision.value),
        new_status=new_status,
    )


class ApprovalResolutionController:
    """Procesa las decisiones del operador, una en vuelo por order_id."""

    def __init__(
        self,
        store: WorkflowStore,
        client: AgentClient,
        agent_id: str,
        notify: Callable[[str, NoticeType], None],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._client = client
        self.agent_id = agent_id
        self._notify = notify
        self._clock = clock
        self._tracker = ExchangeTracker(PENDING_REVIEW, APPROVAL_STATES)
        self._notes: Dict[str, str] = {}

    # Notas del operador

    def set_notes(self, order_id: str, notes: str) -> None:
        if self._store.find_pending(order_id) is None:
            raise NotFound(order_id)
        self._notes[order_id] = notes

    def notes_for(self, order_id: str) -> str:
        return self._notes.get(order_id, "")

    def clear_notes(self) -> None:
        self._notes.clear()

    # Estado

    def state_of(self, order_id: str) -> str:
        return self._tracker.get_state(order_id)

    def is_processing(self, order_id: str) -> bool:
        return self._tracker.is_active(order_id)

    @property
    def active_agent_id(self) -> Optional[str]:
        return self._tracker.active_agent_id

    # Entry point

    async def process_approval(self, order_id: str, decision: Any) -> ApprovalOutcome:
        """
        Aplica la decisión del operador sobre una aprobación pendiente.

        Raises:
            ValidationFailure: decisión inválida o notas vacías (sin llamada remota)
            NotFound: la orden no está pendiente
            ExchangeInFlight: la misma orden ya se está procesando
        """
        try:
            decision = normalize_choice(decision, Decision)
        except ValueError:
            raise ValidationFailure(f"Decisión inválida: {decision!r}")

        request = self._store.find_pending(order_id)
        if request is None:
            raise NotFound(order_id)

        notes = self.notes_for(order_id)
        if not notes.strip():
            self._notify(MISSING_NOTES, NoticeType.ERROR)
            raise ValidationFailure(MISSING_NOTES)

        self._tracker.begin(order_id, SUBMITTING, self.agent_id)
        try:
            message = build_approval_message(request, decision, notes)
            logger.info(f"[{order_id}] Procesando decisión: {decision.value}")

            try:
                result = await self._client.invoke(message, self.agent_id)
            except RemoteCallFailure as e:
                logger.warning(f"[{order_id}] Agente de aprobaciones inalcanzable: {e}")
                return self._fail(order_id, CONNECTION_ERROR)
            except Exception as e:
                logger.error(f"[{order_id}] Error invocando agente: {e}", exc_info=True)
                return self._fail(order_id, CONNECTION_ERROR)

            if not result.success:
                return self._fail(order_id, result.error or GENERIC_FAILURE)

            raw = result.response.result if result.response else None
            resolution = resolution_from_reply(raw, decision, notes)
            try:
                resolved = self._store.resolve_approval(order_id, resolution, self._clock())
            except NotFound:
                self._notify(NO_LONGER_PENDING, NoticeType.ERROR)
                raise

            self._tracker.set_state(order_id, RESOLVED)
            self._notes.pop(order_id, None)
            self._notify(
                f"Approval {decision.value} successfully processed.", NoticeType.SUCCESS
            )
            return ApprovalOutcome(order_id=order_id, status="resolved", resolved=resolved)
        finally:
            self._tracker.finish(order_id)

    def _fail(self, order_id: str, error: str) -> ApprovalOutcome:
        self._tracker.set_state(order_id, FAILED)
        self._notify(error, NoticeType.ERROR)
        return ApprovalOutcome(order_id=order_id, status="failed", error=error)
