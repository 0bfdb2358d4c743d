"""
FastAPI Application - API REST del console de soporte Corey
- Settings centralizado (Pydantic BaseSettings via config.py)
- Dependency Injection con Depends()
- Errores del motor → HTTP Status Codes + ErrorResponse

Endpoints:
- GET  /                              → Raíz informativa
- GET  /health                        → Health check
- POST /chat                          → Enviar mensaje al agente de soporte
- GET  /chat/messages                 → Transcript
- GET  /tickets                       → Tickets
- GET  /approvals/pending             → Cola de aprobaciones
- GET  /approvals/resolved            → Historial de aprobaciones
- PUT  /approvals/{order_id}/notes    → Notas del operador
- POST /approvals/{order_id}/resolve  → Aprobar / denegar
- GET  /dashboard                     → Números del dashboard + Pro Fund
- GET  /notice                        → Aviso vigente
- GET  /settings | PUT /settings      → Configuración de la sesión
- POST /demo                          → Toggle de datos de ejemplo
"""

import sys
import logging
from pathlib import Path
from contextlib import asynccontextmanager
from typing import List, Optional
from fastapi import FastAPI, Depends, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError

# Agregar directorio raíz al path para imports
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from api.config import Settings, get_settings
from api.models import (
    ChatRequest,
    DashboardResponse,
    DemoRequest,
    ErrorResponse,
    HealthResponse,
    NotesRequest,
    ResolveRequest,
    SettingsUpdate,
)
from agent.client import (
    APPROVAL_AGENT_PROMPT,
    SUPPORT_AGENT_PROMPT,
    AgentClient,
    GroqAgentClient,
    HttpAgentClient,
)
from agent.errors import (
    ExchangeInFlight,
    NotFound,
    RemoteCallFailure,
    ValidationFailure,
    WorkflowError,
)
from agent.models import (
    ApprovalOutcome,
    ApprovalRequest,
    AppSettings,
    ChatMessage,
    ExchangeResult,
    ResolvedApproval,
    StatusNotice,
    Ticket,
)
from agent.session import SupportSession

# Logging
logging.basicConfig(
    level=get_settings().LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"


# Dependency Injection
# Singletons inyectables via Depends() para facilitar testing

_client: AgentClient | None = None
_session: SupportSession | None = None


def get_agent_client(settings: Settings = Depends(get_settings)) -> AgentClient:
    """
    Dependency que provee el backend de agentes (HTTP o Groq).

    Permite override en tests via app.dependency_overrides[get_agent_client].
    """
    global _client
    if _client is None:
        if settings.AGENT_BACKEND == "groq":
            logger.info("Inicializando GroqAgentClient...")
            _client = GroqAgentClient(
                api_key=settings.GROQ_API_KEY,
                prompts={
                    settings.SUPPORT_AGENT_ID: SUPPORT_AGENT_PROMPT,
                    settings.APPROVAL_AGENT_ID: APPROVAL_AGENT_PROMPT,
                },
                model=settings.LLM_MODEL,
            )
        else:
            logger.info(f"Inicializando HttpAgentClient ({settings.AGENT_API_URL})")
            _client = HttpAgentClient(
                url=settings.AGENT_API_URL,
                api_key=settings.AGENT_API_KEY,
                timeout=settings.AGENT_TIMEOUT_SECONDS,
            )
    return _client


def get_session(
    settings: Settings = Depends(get_settings),
    client: AgentClient = Depends(get_agent_client),
) -> SupportSession:
    """
    Dependency que provee la sesión del console.

    Permite override en tests via app.dependency_overrides[get_session].
    """
    global _session
    if _session is None:
        _session = SupportSession(
            client,
            support_agent_id=settings.SUPPORT_AGENT_ID,
            approval_agent_id=settings.APPROVAL_AGENT_ID,
            app_settings=settings.app_settings(),
            notice_ttl_seconds=settings.NOTICE_TTL_SECONDS,
            enforce_fund_window=settings.FUND_WINDOW_ENFORCED,
        )
        if settings.SAMPLE_DATA:
            _session.load_sample_data(True)
    return _session


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler: pre-crea la sesión al startup."""
    logger.info("Corey Support API iniciando...")
    try:
        settings = get_settings()
        get_session(settings, get_agent_client(settings))
        logger.info("Sesión pre-cargada")
    except Exception as e:
        logger.error(f"Error inicializando la sesión: {e}")

    yield
    logger.info("Corey Support API cerrando...")


# FastAPI App

app = FastAPI(
    title="Corey Support API",
    description="Console de soporte: chat con agente, tickets, aprobaciones y Pro Fund",
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    responses={
        422: {"model": ErrorResponse, "description": "Error de validación"},
        500: {"model": ErrorResponse, "description": "Error interno"},
    },
)

# CORS middleware (para desarrollo)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # En producción, especificar dominios
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global Error Handlers


def _error(status: int, type: str, title: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content=ErrorResponse(
            type=type, title=title, status=status, detail=detail
        ).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Errores de validación Pydantic → 422 con formato ErrorResponse."""
    return _error(422, "validation_error", "Datos de entrada inválidos", str(exc.errors()))


@app.exception_handler(WorkflowError)
async def workflow_exception_handler(request: Request, exc: WorkflowError):
    """Errores del motor → status según el tipo."""
    if isinstance(exc, ValidationFailure):
        return _error(400, "validation_failure", "Invalid Input", str(exc))
    if isinstance(exc, NotFound):
        return _error(404, "not_found", "Approval Not Pending", str(exc))
    if isinstance(exc, ExchangeInFlight):
        return _error(409, "exchange_in_flight", "Request In Progress", str(exc))
    if isinstance(exc, RemoteCallFailure):
        return _error(502, "remote_call_failure", "Agent Unreachable", str(exc))
    logger.error(f"Error del motor en {request.url.path}: {exc}")
    return _error(500, "workflow_error", "Workflow Error", str(exc))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTPException → ErrorResponse con el status original."""
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return _error(exc.status_code, "http_error", detail, detail)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """
    Excepción no manejada → 500 genérico.

    Loguea el error real pero devuelve mensaje genérico al cliente
    para no filtrar detalles internos.
    """
    logger.error(f"Error no manejado en {request.url.path}: {exc}", exc_info=True)
    return _error(
        500,
        "internal_error",
        "Error Interno",
        "Error interno del servidor. Intenta nuevamente más tarde.",
    )


# Endpoints


@app.get("/", tags=["Root"])
async def root():
    """Endpoint raíz"""
    return {
        "message": "Corey Support API",
        "version": VERSION,
        "docs": "/docs",
        "health": "/health",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(
    settings: Settings = Depends(get_settings),
    session: SupportSession = Depends(get_session),
):
    """
    Health check endpoint.

    Verifica:
    - Backend de agentes configurado (URL o API key de Groq)
    - Sesión activa
    """
    components = {"session": f"ok ({session.session_id})"}
    overall_status = "healthy"

    if settings.AGENT_BACKEND == "groq":
        components["agent_backend"] = "groq" if settings.GROQ_API_KEY else "no_api_key"
    else:
        components["agent_backend"] = "http" if settings.AGENT_API_URL else "no_url"
    if components["agent_backend"] in ("no_api_key", "no_url"):
        overall_status = "degraded"

    return HealthResponse(status=overall_status, version=VERSION, components=components)


# Chat


@app.post(
    "/chat",
    response_model=ExchangeResult,
    responses={409: {"model": ErrorResponse, "description": "Mensaje en curso"}},
    tags=["Chat"],
)
async def send_chat_message(
    request: ChatRequest,
    session: SupportSession = Depends(get_session),
):
    """
    Envía un mensaje al agente de soporte.

    **Flujo:**
    1. Mensaje vacío → status "ignored", sin llamada remota
    2. Invocación del agente y mensaje de respuesta
    3. Efectos: ticket → aprobación → revenue → lead

    **Errores posibles:**
    - 409: ya hay un mensaje en curso
    """
    return await session.chat.send_message(request.message)


@app.get("/chat/messages", response_model=List[ChatMessage], tags=["Chat"])
async def list_messages(session: SupportSession = Depends(get_session)):
    return list(session.store.messages)


@app.get("/tickets", response_model=List[Ticket], tags=["Tickets"])
async def list_tickets(session: SupportSession = Depends(get_session)):
    return list(session.store.tickets)


# Aprobaciones


@app.get("/approvals/pending", response_model=List[ApprovalRequest], tags=["Approvals"])
async def list_pending(session: SupportSession = Depends(get_session)):
    return list(session.store.pending_approvals)


@app.get("/approvals/resolved", response_model=List[ResolvedApproval], tags=["Approvals"])
async def list_resolved(session: SupportSession = Depends(get_session)):
    return list(session.store.resolved_approvals)


@app.put(
    "/approvals/{order_id}/notes",
    responses={404: {"model": ErrorResponse, "description": "No está pendiente"}},
    tags=["Approvals"],
)
async def set_operator_notes(
    order_id: str,
    request: NotesRequest,
    session: SupportSession = Depends(get_session),
):
    session.approvals.set_notes(order_id, request.notes)
    return {"order_id": order_id, "notes": request.notes}


@app.post(
    "/approvals/{order_id}/resolve",
    response_model=ApprovalOutcome,
    responses={
        400: {"model": ErrorResponse, "description": "Faltan notas del operador"},
        404: {"model": ErrorResponse, "description": "No está pendiente"},
        409: {"model": ErrorResponse, "description": "Ya se está procesando"},
    },
    tags=["Approvals"],
)
async def resolve_approval(
    order_id: str,
    request: ResolveRequest,
    session: SupportSession = Depends(get_session),
):
    """
    Aprueba o deniega una solicitud pendiente.

    Un fallo del agente devuelve 200 con status "failed": la solicitud
    sigue pendiente y el aviso queda en GET /notice.
    """
    return await session.approvals.process_approval(order_id, request.decision)


# Dashboard y configuración


@app.get("/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
async def get_dashboard(session: SupportSession = Depends(get_session)):
    return session.dashboard()


@app.get("/notice", response_model=Optional[StatusNotice], tags=["Dashboard"])
async def get_notice(session: SupportSession = Depends(get_session)):
    return session.current_notice()


@app.get("/settings", response_model=AppSettings, tags=["Settings"])
async def get_app_settings(session: SupportSession = Depends(get_session)):
    return session.settings


@app.put("/settings", response_model=AppSettings, tags=["Settings"])
async def update_app_settings(
    request: SettingsUpdate,
    session: SupportSession = Depends(get_session),
):
    changes = request.model_dump(exclude_unset=True, exclude_none=True)
    try:
        return session.update_settings(changes)
    except ValidationError as e:
        raise ValidationFailure(str(e)) from e


@app.post("/demo", tags=["Settings"])
async def toggle_sample_data(
    request: DemoRequest,
    session: SupportSession = Depends(get_session),
):
    """Carga los datos de ejemplo o deja el console vacío."""
    session.load_sample_data(request.enabled)
    return {"sample_data": request.enabled, **session.store.stats()}


# Error Handler 404


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handler para 404"""
    return _error(
        404,
        "not_found",
        "No Encontrado",
        f"El endpoint '{request.url.path}' no existe.",
    )


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower(),
    )
