"""
Exchange Tracker — Máquina de estados de los intercambios en curso.

Un intercambio por clave: el chat usa el session_id, las aprobaciones el
order_id. Así dos aprobaciones distintas se pueden resolver a la vez,
pero la misma clave nunca tiene dos intercambios en vuelo.
"""

import logging
from typing import Dict, Optional

from agent.errors import ExchangeInFlight

logger = logging.getLogger(__name__)


# Chat
IDLE = "IDLE"
SENDING = "SENDING"
APPLYING = "APPLYING"
FAILED = "FAILED"

# Aprobaciones
PENDING_REVIEW = "PENDING_REVIEW"
SUBMITTING = "SUBMITTING"
RESOLVED = "RESOLVED"


CHAT_STATES = {IDLE, SENDING, APPLYING, FAILED}
APPROVAL_STATES = {PENDING_REVIEW, SUBMITTING, RESOLVED, FAILED}


class ExchangeTracker:
    """Estado de los intercambios en vuelo, por clave."""

    def __init__(self, idle_state: str, valid_states: set[str]):
        if idle_state not in valid_states:
            raise ValueError(f"Estado inválido: {idle_state}")
        self._idle = idle_state
        self._valid = valid_states
        self._states: Dict[str, str] = {}
        self._agents: Dict[str, str] = {}

    def get_state(self, key: str) -> str:
        """Devuelve el estado actual (idle si no hay intercambio)."""
        return self._states.get(key, self._idle)

    def is_active(self, key: str) -> bool:
        return key in self._states

    def begin(self, key: str, state: str, agent_id: Optional[str] = None) -> None:
        """Abre un intercambio. Rechaza si la clave ya tiene uno en curso."""
        if self.is_active(key):
            raise ExchangeInFlight(key)
        self._check(state)
        self._states[key] = state
        if agent_id:
            self._agents[key] = agent_id
        logger.debug(f"[{key}] state → {state}")

    def set_state(self, key: str, state: str) -> None:
        self._check(state)
        if not self.is_active(key):
            raise ValueError(f"No hay intercambio en curso para {key}")
        self._states[key] = state
        logger.debug(f"[{key}] state → {state}")

    def finish(self, key: str) -> None:
        """Vuelve a idle y libera el agente activo."""
        self._states.pop(key, None)
        self._agents.pop(key, None)
        logger.debug(f"[{key}] state → {self._idle}")

    @property
    def active_keys(self) -> list[str]:
        return list(self._states)

    @property
    def active_agent_id(self) -> Optional[str]:
        """Agente que está atendiendo algún intercambio (el más reciente)."""
        if not self._agents:
            return None
        return next(reversed(self._agents.values()))

    def _check(self, state: str) -> None:
        if state not in self._valid:
            raise ValueError(f"Estado inválido: {state}")
