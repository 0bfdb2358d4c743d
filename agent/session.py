"""
Support Session — Arma el store, los dos controllers y la configuración
de una sesión del console.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from agent.approvals import ApprovalResolutionController
from agent.client import AgentClient
from agent.fund_policy import FundStatus, evaluate_fund
from agent.models import AppSettings, NoticeType, StatusNotice, utc_now
from agent.orchestrator import ChatSessionController
from agent.samples import sample_state
from agent.store import WorkflowStore

logger = logging.getLogger(__name__)


class SupportSession:
    """Una sesión activa del console de soporte."""

    def __init__(
        self,
        client: AgentClient,
        support_agent_id: str,
        approval_agent_id: str,
        app_settings: Optional[AppSettings] = None,
        session_id: Optional[str] = None,
        notice_ttl_seconds: float = 3.0,
        enforce_fund_window: bool = False,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.settings = app_settings or AppSettings()
        self.store = WorkflowStore()
        self.enforce_fund_window = enforce_fund_window
        self._notice_ttl = notice_ttl_seconds
        self._notice: Optional[StatusNotice] = None
        self._clock = clock

        self.chat = ChatSessionController(
            self.store,
            client,
            agent_id=support_agent_id,
            session_id=self.session_id,
            settings=lambda: self.settings,
            clock=clock,
        )
        self.approvals = ApprovalResolutionController(
            self.store,
            client,
            agent_id=approval_agent_id,
            notify=self.post_notice,
            clock=clock,
        )
        logger.info(f"Sesión {self.session_id} iniciada")

    # Avisos

    def post_notice(self, text: str, type: NoticeType) -> None:
        self._notice = StatusNotice.create(text, type, self._clock(), self._notice_ttl)
        logger.info(f"Aviso ({type.value}): {text}")

    def current_notice(self) -> Optional[StatusNotice]:
        """Aviso vigente; vence solo."""
        if self._notice is not None and not self._notice.is_active(self._clock()):
            self._notice = None
        return self._notice

    # Configuración

    def update_settings(self, changes: Dict[str, Any]) -> AppSettings:
        """Merge parcial validado; si algo es inválido no cambia nada."""
        self.settings = AppSettings.model_validate({**self.settings.model_dump(), **changes})
        logger.info(f"Settings actualizados: {sorted(changes)}")
        return self.settings

    def load_sample_data(self, enabled: bool) -> None:
        """Toggle de datos demo: carga el set de ejemplo o deja todo vacío."""
        if enabled:
            self.store.load(sample_state())
        else:
            self.store.reset()
        self.approvals.clear_notes()
        logger.info(f"Datos de ejemplo {'cargados' if enabled else 'descartados'}")

    # Dashboard

    @property
    def active_agent_id(self) -> Optional[str]:
        return self.chat.active_agent_id or self.approvals.active_agent_id

    def fund_status(self) -> FundStatus:
        window = self.settings.time_window_days if self.enforce_fund_window else None
        return evaluate_fund(self.store.state, self.settings, self._clock(), window)

    def dashboard(self) -> Dict[str, Any]:
        stats = self.store.stats()
        return {
            **stats,
            "notification_count": stats["pending_approval_count"],
            "greeting": self.settings.greeting,
            "pro_fund_percentage": self.settings.pro_fund_percentage,
            "time_window_days": self.settings.time_window_days,
            "fund": self.fund_status(),
            "active_agent_id": self.active_agent_id,
        }
