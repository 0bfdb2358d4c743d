"""
Pydantic models para validación de requests/responses.

Las entidades de dominio (tickets, aprobaciones, mensajes) se devuelven
tal cual desde agent.models; acá solo viven los envelopes de la API.
"""

from typing import Dict, Optional

from pydantic import BaseModel, Field

from agent.fund_policy import FundStatus
from agent.models import Decision


# Error Response (RFC 7807 simplificado)


class ErrorResponse(BaseModel):
    """
    Modelo de error estructurado inspirado en RFC 7807.

    Se usa en todos los errores para garantizar un formato consistente.
    """

    type: str = Field(
        ..., description="Categoría del error (ej: 'validation_error', 'not_found')"
    )
    title: str = Field(..., description="Título breve del error")
    status: int = Field(..., description="Código HTTP del error")
    detail: str = Field(..., description="Descripción legible del error")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "type": "validation_failure",
                    "title": "Missing Operator Notes",
                    "status": 400,
                    "detail": "Please add notes before processing this approval.",
                }
            ]
        }
    }


# Request Models


class ChatRequest(BaseModel):
    """Mensaje del usuario para el agente de soporte."""

    message: str = Field(..., description="Texto del usuario", max_length=4000)

    model_config = {
        "json_schema_extra": {
            "examples": [{"message": "Can you tell me about the Concierge Setup package?"}]
        }
    }


class NotesRequest(BaseModel):
    notes: str = Field(..., description="Notas del operador", max_length=2000)


class ResolveRequest(BaseModel):
    decision: Decision = Field(..., description="approved | denied")


class SettingsUpdate(BaseModel):
    """Update parcial de AppSettings: solo se aplican los campos enviados."""

    greeting: Optional[str] = None
    concierge_checkout_url: Optional[str] = None
    addon_checkout_url: Optional[str] = None
    sheets_url: Optional[str] = None
    pro_fund_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    pro_fund_threshold: Optional[float] = Field(default=None, ge=0)
    conversion_count_threshold: Optional[int] = Field(default=None, ge=0)
    time_window_days: Optional[int] = Field(default=None, ge=1)


class DemoRequest(BaseModel):
    enabled: bool


# Response Models


class DashboardResponse(BaseModel):
    """Números del dashboard y estado del Pro Fund."""

    active_ticket_count: int
    total_revenue: float
    pending_approval_count: int
    resolved_approval_count: int
    notification_count: int
    pro_fund_balance: float
    conversion_count: int
    pro_fund_percentage: float
    time_window_days: int
    greeting: str
    fund: FundStatus
    active_agent_id: Optional[str] = None


class HealthResponse(BaseModel):
    """Response del health check"""

    status: str = Field(..., description="Estado del servicio")
    version: str = Field(..., description="Versión de la API")
    components: Dict[str, str] = Field(..., description="Estado de componentes")
