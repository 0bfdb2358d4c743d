"""
Agent Client — Invocación de los agentes remotos.

Contrato único: `invoke(message, agent_id, context) -> AgentResult`.

Backends:
- HttpAgentClient: servicio de agentes por HTTP (httpx async)
- GroqAgentClient: cada agente es un chat completion de Groq con su
  propio system prompt (útil en desarrollo, sin servicio de agentes)

Errores de transporte → RemoteCallFailure. Errores que reporta el
servicio → AgentResult(success=False, error=...).
"""

import asyncio
import logging
from collections import OrderedDict, deque
from typing import Any, Deque, Dict, Optional

import httpx
from pydantic import ValidationError

try:
    from groq import APIConnectionError, APIError, Groq
except ImportError:
    raise ImportError("Dependencia faltante: pip install groq")

from agent.errors import RemoteCallFailure
from agent.models import AgentResponse, AgentResult

logger = logging.getLogger(__name__)


class AgentClient:
    """Interfaz de los backends de agentes."""

    async def invoke(
        self,
        message: str,
        agent_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        raise NotImplementedError


# HTTP


class HttpAgentClient(AgentClient):
    """Invoca agentes en un servicio HTTP (POST JSON)."""

    def __init__(
        self,
        url: str,
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport  # se inyecta en tests

    async def invoke(
        self,
        message: str,
        agent_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        payload: Dict[str, Any] = {"message": message, "agent_id": agent_id}
        session_id = (context or {}).get("session_id")
        if session_id:
            payload["session_id"] = session_id

        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(self._url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            logger.error(f"Error de conexión con agente {agent_id}: {e}")
            raise RemoteCallFailure(str(e)) from e

        if response.status_code != 200:
            logger.warning(
                f"Agente {agent_id} respondió {response.status_code}: {response.text[:120]}"
            )
            return AgentResult(success=False, error=_error_detail(response))

        try:
            return AgentResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            logger.warning(f"Respuesta malformada del agente {agent_id}: {e}")
            return AgentResult(
                success=False, error="The agent service returned a malformed response."
            )


def _error_detail(response: httpx.Response) -> str:
    """Mensaje de error del body si lo hay, si no un genérico con el status."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("error", "detail", "message"):
            if isinstance(body.get(key), str) and body[key].strip():
                return body[key]
    return f"Agent service error (HTTP {response.status_code})."


# Groq


SUPPORT_AGENT_PROMPT = """\
You are Corey, the customer support concierge for a software product.
Answer the customer and reply ONLY with a JSON object:
{
  "response_text": "<answer shown to the customer>",
  "citations": [{"source": "<doc>", "excerpt": "<quote>"}],
  "ticket": {"ticket_id": "TKT-###", "category": "billing|technical|account|general",
             "subject": "...", "status": "open|in_progress|pending_approval|resolved",
             "priority": "low|medium|high"},
  "lead_info": {"name": "...", "email": "...", "use_case": "..."},
  "upsell_offer": {"product_name": "...", "price": "$..", "description": "...",
                   "checkout_url": "..."},
  "approval_request": {"request_type": "refund|account_change", "reason": "...",
                       "order_id": "...", "desired_outcome": "...", "summary": "..."},
  "revenue_entry": {"amount": <number>, "product": "..."}
}
Rules:
1. Only "response_text" is required; omit every other key unless it applies.
2. Refunds and account changes always need an "approval_request"; never promise them.
3. Add "revenue_entry" only when the customer confirms a purchase.
"""

APPROVAL_AGENT_PROMPT = """\
You process operator decisions on refund and account-change requests.
Reply ONLY with a JSON object:
{
  "decision": "approved|denied",
  "customer_response": "<message for the customer>",
  "ticket_update": {"resolution_notes": "...", "new_status": "resolved|denied"},
  "outcome_log": {"operator_notes": "...", "action_taken": "..."}
}
Never change the operator's decision.
"""


class GroqAgentClient(AgentClient):
    """Corre cada agente como un chat completion de Groq."""

    def __init__(
        self,
        api_key: str,
        prompts: Dict[str, str],
        model: str = "llama-3.3-70b-versatile",
        history_turns: int = 6,
        max_sessions: int = 200,
        client: Optional[Groq] = None,
    ):
        self._client = client or Groq(api_key=api_key)
        self._prompts = prompts
        self._model = model
        # Historial corto por (agente, sesión), formato OpenAI messages.
        # Se descartan las sesiones menos usadas por encima de max_sessions
        self._history: "OrderedDict[tuple, Deque[dict]]" = OrderedDict()
        self._history_len = history_turns * 2
        self._max_sessions = max_sessions
        logger.info(f"GroqAgentClient inicializado (modelo: {self._model})")

    async def invoke(
        self,
        message: str,
        agent_id: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> AgentResult:
        system_prompt = self._prompts.get(agent_id)
        if system_prompt is None:
            return AgentResult(success=False, error=f"Unknown agent: {agent_id}")

        session_id = (context or {}).get("session_id")
        key = (agent_id, session_id)
        history = self._history.get(key, ()) if session_id else ()

        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history)
        messages.append({"role": "user", "content": message})

        try:
            completion = await asyncio.to_thread(
                self._client.chat.completions.create,
                messages=messages,
                model=self._model,
                temperature=0.2,
                max_tokens=800,
            )
        except APIConnectionError as e:
            logger.error(f"Groq inalcanzable ({agent_id}): {e}")
            raise RemoteCallFailure(str(e)) from e
        except APIError as e:
            logger.error(f"Error de Groq ({agent_id}): {e}")
            return AgentResult(success=False, error="The agent could not process the request.")

        content = (completion.choices[0].message.content or "").strip()
        if session_id:
            self._remember(key, message, content)

        return AgentResult(success=True, response=AgentResponse(result=content))

    def _remember(self, key: tuple, message: str, content: str) -> None:
        history = self._history.pop(key, None)
        if history is None:
            history = deque(maxlen=self._history_len)
        history.append({"role": "user", "content": message})
        history.append({"role": "assistant", "content": content})
        self._history[key] = history
        while len(self._history) > self._max_sessions:
            self._history.popitem(last=False)
