"""
Modelos de dominio del console de soporte.

Entidades que el motor de workflow mantiene por sesión (tickets,
aprobaciones, ledger de revenue, transcript) y los contratos con los
agentes remotos. Los modelos que vienen de un agente son tolerantes:
ignoran campos desconocidos y tratan los `null` como ausentes.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

logger = logging.getLogger(__name__)


# Enums


class Role(str, Enum):
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class TicketCategory(str, Enum):
    BILLING = "billing"
    TECHNICAL = "technical"
    ACCOUNT = "account"
    GENERAL = "general"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    PENDING_APPROVAL = "pending_approval"
    RESOLVED = "resolved"
    DENIED = "denied"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RequestType(str, Enum):
    REFUND = "refund"
    ACCOUNT_CHANGE = "account_change"


class Decision(str, Enum):
    APPROVED = "approved"
    DENIED = "denied"


class NoticeType(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


def normalize_choice(value: Any, choices: type[Enum]) -> Enum:
    """'In Progress' / 'in-progress' / 'IN_PROGRESS' → TicketStatus.IN_PROGRESS.

    Lanza ValueError si no hay coincidencia.
    """
    if isinstance(value, choices):
        return value
    key = str(value).strip().lower().replace(" ", "_").replace("-", "_")
    return choices(key)


def default_status_for(decision: Decision) -> TicketStatus:
    """Estado del ticket vinculado cuando el agente no declara uno."""
    if decision == Decision.APPROVED:
        return TicketStatus.RESOLVED
    return TicketStatus.DENIED


# Anotaciones que vienen del agente


class AgentModel(BaseModel):
    """Base para todo lo que llega desde un agente remoto."""

    model_config = ConfigDict(extra="ignore", frozen=True, coerce_numbers_to_str=True)

    # Campos que asigna el store; lo que mande el agente se descarta
    store_managed: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        clean = {}
        for key, value in data.items():
            if value is None:
                continue
            if key in cls.store_managed and not isinstance(value, datetime):
                continue
            clean[key] = value
        return clean


class Citation(AgentModel):
    source: str = "Source"
    excerpt: str = ""


class LeadInfo(AgentModel):
    name: str = ""
    email: str = ""
    use_case: str = ""


class UpsellOffer(AgentModel):
    product_name: str = "Product"
    price: str = "$0"
    description: str = ""
    checkout_url: str = "#"


_TICKET_DEFAULTS: Dict[str, Enum] = {
    "category": TicketCategory.GENERAL,
    "status": TicketStatus.OPEN,
    "priority": TicketPriority.LOW,
}


class Ticket(AgentModel):
    """Ticket de soporte, clave única `ticket_id`."""

    store_managed: ClassVar[tuple[str, ...]] = ("created_at",)

    ticket_id: Optional[str] = None
    category: TicketCategory = TicketCategory.GENERAL
    subject: str = ""
    status: TicketStatus = TicketStatus.OPEN
    priority: TicketPriority = TicketPriority.LOW
    created_at: Optional[datetime] = None

    @model_validator(mode="before")
    @classmethod
    def _lenient_choices(cls, data: Any) -> Any:
        # Un valor desconocido se quita: no cuenta como campo enviado, así
        # un alta toma el default y una actualización conserva lo guardado
        if not isinstance(data, dict):
            return data
        clean = dict(data)
        for name, default in _TICKET_DEFAULTS.items():
            if clean.get(name) is None:
                continue
            try:
                clean[name] = normalize_choice(clean[name], type(default))
            except ValueError:
                logger.warning(f"Ticket: {name}={clean[name]!r} desconocido, se ignora")
                del clean[name]
        return clean


class ApprovalRequest(AgentModel):
    """Solicitud que espera decisión de un operador humano."""

    store_managed: ClassVar[tuple[str, ...]] = ("timestamp",)

    order_id: Optional[str] = None
    request_type: RequestType = RequestType.REFUND
    reason: str = ""
    desired_outcome: str = ""
    summary: str = ""
    ticket_id: Optional[str] = None
    customer_name: Optional[str] = None
    timestamp: Optional[datetime] = None

    @field_validator("request_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> RequestType:
        return normalize_choice(value, RequestType)


class RevenueEntry(AgentModel):
    """Venta registrada; `amount` tiene que ser numérico de verdad."""

    store_managed: ClassVar[tuple[str, ...]] = ("timestamp",)

    amount: float = Field(..., strict=True, allow_inf_nan=False)
    product: str = ""
    pro_fund_allocation: Optional[float] = Field(default=None, allow_inf_nan=False)
    timestamp: Optional[datetime] = None


# Payload interpretado


class AgentPayload(BaseModel):
    """
    Datos estructurados extraídos de la respuesta de un agente.

    `data` conserva el mapping original (el controller de aprobaciones lee
    de ahí `decision`, `ticket_update`, `outcome_log`). `rejected` lista las
    anotaciones presentes pero inválidas: campo → motivo.
    """

    data: Dict[str, Any] = Field(default_factory=dict)
    response_text: Optional[str] = None
    citations: List[Citation] = Field(default_factory=list)
    ticket: Optional[Ticket] = None
    lead_info: Optional[LeadInfo] = None
    upsell_offer: Optional[UpsellOffer] = None
    approval_request: Optional[ApprovalRequest] = None
    revenue_entry: Optional[RevenueEntry] = None
    rejected: Dict[str, str] = Field(default_factory=dict)


class Uninterpretable(BaseModel):
    """La respuesta no trae un payload utilizable. No es un error fatal."""

    reason: str
    text: str = ""


# Transcript


def _new_id() -> str:
    return uuid.uuid4().hex


class ChatMessage(BaseModel):
    """Mensaje del transcript. Inmutable una vez agregado."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    role: Role
    content: str
    timestamp: datetime
    citations: List[Citation] = Field(default_factory=list)
    ticket: Optional[Ticket] = None
    lead_info: Optional[LeadInfo] = None
    upsell_offer: Optional[UpsellOffer] = None
    approval_request: Optional[ApprovalRequest] = None
    revenue_entry: Optional[RevenueEntry] = None


# Aprobaciones resueltas


class ApprovalResolution(BaseModel):
    """Resultado que el controller de aprobaciones entrega al store."""

    model_config = ConfigDict(frozen=True)

    decision: Decision
    customer_response: str
    resolution_notes: str
    operator_notes: str
    action_taken: str
    new_status: TicketStatus


class ResolvedApproval(BaseModel):
    model_config = ConfigDict(frozen=True)

    request: ApprovalRequest
    decision: Decision
    customer_response: str
    resolution_notes: str
    operator_notes: str
    action_taken: str
    resolved_at: datetime


# Contrato con agentes remotos


class AgentResponse(BaseModel):
    result: Any = None
    message: Optional[str] = None


class AgentResult(BaseModel):
    """`invoke_agent(message, agent_id, context) -> {success, response|error}`."""

    success: bool
    response: Optional[AgentResponse] = None
    error: Optional[str] = None


# Configuración de la aplicación


class AppSettings(BaseModel):
    """Configuración del console (no es estado de workflow)."""

    greeting: str = "Welcome to Corey Support! How can I help you today?"
    concierge_checkout_url: str = "https://checkout.stripe.com/concierge-setup"
    addon_checkout_url: str = "https://checkout.stripe.com/addon-pack"
    sheets_url: str = ""
    pro_fund_percentage: float = Field(default=20, ge=0, le=100)
    pro_fund_threshold: float = Field(default=120, ge=0)
    conversion_count_threshold: int = Field(default=3, ge=0)
    time_window_days: int = Field(default=14, ge=1)


# Resultados de los controllers


class StatusNotice(BaseModel):
    """Aviso temporizado para el operador."""

    text: str
    type: NoticeType
    expires_at: datetime

    @classmethod
    def create(
        cls, text: str, type: NoticeType, now: datetime, ttl_seconds: float
    ) -> "StatusNotice":
        return cls(text=text, type=type, expires_at=now + timedelta(seconds=ttl_seconds))

    def is_active(self, now: datetime) -> bool:
        return now < self.expires_at


class ExchangeResult(BaseModel):
    """Resultado de un round trip de chat: mensajes agregados al transcript."""

    status: Literal["ignored", "completed", "failed"]
    messages: List[ChatMessage] = Field(default_factory=list)


class ApprovalOutcome(BaseModel):
    order_id: str
    status: Literal["resolved", "failed"]
    resolved: Optional[ResolvedApproval] = None
    error: Optional[str] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
