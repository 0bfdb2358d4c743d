"""
Chat Session Controller — Un round trip de chat con el agente de soporte.

Flujo:
1. Validar el mensaje (vacío → no-op) y rechazar si hay otro en vuelo
2. Agregar el mensaje del usuario al transcript
3. Invocar al agente de soporte con el session_id como contexto
4. Interpretar la respuesta y agregar el mensaje del agente
5. Aplicar efectos en orden fijo: ticket → aprobación → revenue → lead
6. Volver a IDLE siempre (finally)

Estados: IDLE → SENDING → {APPLYING, FAILED} → IDLE
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from agent.client import AgentClient
from agent.conversation import (
    APPLYING,
    CHAT_STATES,
    FAILED,
    IDLE,
    SENDING,
    ExchangeTracker,
)
from agent.errors import RejectedEntry, RemoteCallFailure
from agent.interpreter import interpret
from agent.models import (
    AgentPayload,
    AgentResult,
    AppSettings,
    ChatMessage,
    ExchangeResult,
    Role,
    Uninterpretable,
    utc_now,
)
from agent.store import WorkflowStore

logger = logging.getLogger(__name__)


ACKNOWLEDGEMENT = "I received your message. Let me look into that for you."
GENERIC_APOLOGY = (
    "I apologize, but I encountered an issue processing your request. Please try again."
)
CONNECTION_APOLOGY = (
    "I apologize, but there was a connection issue. Please try again in a moment."
)


class ChatSessionController:
    """Orquesta los intercambios de chat de una sesión."""

    def __init__(
        self,
        store: WorkflowStore,
        client: AgentClient,
        agent_id: str,
        session_id: str,
        settings: Callable[[], AppSettings],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._client = client
        self.agent_id = agent_id
        self.session_id = session_id
        self._settings = settings
        self._clock = clock
        self._tracker = ExchangeTracker(IDLE, CHAT_STATES)

    @property
    def state(self) -> str:
        return self._tracker.get_state(self.session_id)

    @property
    def active_agent_id(self) -> Optional[str]:
        return self._tracker.active_agent_id

    # Entry point

    async def send_message(self, text: str) -> ExchangeResult:
        """
        Procesa un mensaje del usuario y devuelve los mensajes agregados.

        Raises:
            ExchangeInFlight: si la sesión ya tiene un intercambio en curso
        """
        trimmed = (text or "").strip()
        if not trimmed:
            return ExchangeResult(status="ignored")

        key = self.session_id
        self._tracker.begin(key, SENDING, self.agent_id)
        added: List[ChatMessage] = []
        try:
            added.append(self._append(Role.USER, trimmed))
            logger.info(f"[{key}] Mensaje: {trimmed[:60]}")

            try:
                result = await self._client.invoke(
                    trimmed, self.agent_id, {"session_id": key}
                )
            except RemoteCallFailure as e:
                logger.warning(f"[{key}] Agente inalcanzable: {e}")
                return self._fail(added, CONNECTION_APOLOGY)
            except Exception as e:
                logger.error(f"[{key}] Error invocando agente: {e}", exc_info=True)
                return self._fail(added, CONNECTION_APOLOGY)

            if not result.success:
                logger.warning(f"[{key}] El agente reportó error: {result.error}")
                return self._fail(added, result.error or GENERIC_APOLOGY)

            self._tracker.set_state(key, APPLYING)
            return self._apply_reply(result, added)
        finally:
            self._tracker.finish(key)

    # Interpretación y efectos

    def _apply_reply(self, result: AgentResult, added: List[ChatMessage]) -> ExchangeResult:
        raw = result.response.result if result.response else None
        message = result.response.message if result.response else None
        interpreted = interpret(raw)

        if isinstance(interpreted, Uninterpretable):
            content = interpreted.text.strip() or (message or "").strip()
            if not content:
                logger.warning(f"[{self.session_id}] Respuesta sin texto utilizable")
                return self._fail(added, GENERIC_APOLOGY)
            added.append(self._append(Role.AGENT, content))
            return ExchangeResult(status="completed", messages=added)

        now = self._clock()
        agent_msg = ChatMessage(
            role=Role.AGENT,
            content=interpreted.response_text or message or ACKNOWLEDGEMENT,
            timestamp=now,
            citations=interpreted.citations,
            ticket=interpreted.ticket,
            lead_info=interpreted.lead_info,
            upsell_offer=interpreted.upsell_offer,
            approval_request=interpreted.approval_request,
            revenue_entry=interpreted.revenue_entry,
        )
        added.append(self._store.append_message(agent_msg))
        added.extend(self._apply_effects(interpreted, now))
        return ExchangeResult(status="completed", messages=added)

    def _apply_effects(self, payload: AgentPayload, now: datetime) -> List[ChatMessage]:
        """Efectos en orden fijo; cada uno depende solo de su campo del payload."""
        notices: List[ChatMessage] = []
        settings = self._settings()

        # 1. Ticket
        if payload.ticket is not None:
            if payload.ticket.ticket_id:
                self._store.upsert_ticket(payload.ticket, now)
            else:
                logger.info(f"[{self.session_id}] Ticket sin ticket_id: solo se muestra")
        elif "ticket" in payload.rejected:
            notices.append(
                self._warn(f"Ticket update was not applied: {payload.rejected['ticket']}.")
            )

        # 2. Aprobación
        if payload.approval_request is not None:
            lead = payload.lead_info
            fallback = lead.name if lead and lead.name else "Customer"
            try:
                request, _ = self._store.enqueue_approval(
                    payload.approval_request, now, fallback
                )
                notices.append(
                    self._append(
                        Role.SYSTEM,
                        f"Approval request submitted for {request.request_type.value}. "
                        "An operator will review and follow up.",
                    )
                )
            except RejectedEntry as e:
                notices.append(self._warn(f"Approval request was not submitted: {e.reason}."))
        elif "approval_request" in payload.rejected:
            notices.append(
                self._warn(
                    "Approval request was not submitted: "
                    f"{payload.rejected['approval_request']}."
                )
            )

        # 3. Revenue
        if payload.revenue_entry is not None:
            try:
                self._store.record_revenue(
                    payload.revenue_entry, now, settings.pro_fund_percentage
                )
            except RejectedEntry as e:
                notices.append(self._warn(_revenue_warning(payload.data, e.reason)))
        elif "revenue_entry" in payload.rejected:
            notices.append(
                self._warn(_revenue_warning(payload.data, payload.rejected["revenue_entry"]))
            )

        # 4. Lead
        if payload.lead_info is not None:
            name = payload.lead_info.name or "Customer"
            notices.append(
                self._append(Role.SYSTEM, f"Lead information captured for {name}.")
            )

        return notices

    # helpers

    def _append(self, role: Role, content: str) -> ChatMessage:
        return self._store.append_message(
            ChatMessage(role=role, content=content, timestamp=self._clock())
        )

    def _warn(self, content: str) -> ChatMessage:
        logger.warning(f"[{self.session_id}] {content}")
        return self._append(Role.SYSTEM, content)

    def _fail(self, added: List[ChatMessage], content: str) -> ExchangeResult:
        self._tracker.set_state(self.session_id, FAILED)
        added.append(self._append(Role.AGENT, content))
        return ExchangeResult(status="failed", messages=added)


def _revenue_warning(data: Dict[str, Any], reason: str) -> str:
    entry = data.get("revenue_entry")
    product = entry.get("product") if isinstance(entry, dict) else None
    if product:
        return f"Revenue entry for {product} was not recorded: {reason}."
    return f"Revenue entry was not recorded: {reason}."
