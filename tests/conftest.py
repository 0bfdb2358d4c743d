"""
Configuración compartida de fixtures para los tests del console.

Provee:
- Settings de prueba (sin necesidad de .env real)
- FakeAgentClient con respuestas encoladas (sin red)
- Reloj fijo controlable
- SupportSession y TestClient de FastAPI con dependency overrides
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Agregar raíz del proyecto al path
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from agent.client import AgentClient
from agent.models import AgentResponse, AgentResult
from agent.session import SupportSession
from agent.store import WorkflowStore
from api.config import Settings, get_settings
from api.main import app, get_agent_client, get_session

SUPPORT_AGENT = "support-agent"
APPROVAL_AGENT = "approval-agent"
SESSION_ID = "test-session"


# Agente falso


def ok(result, message=None) -> AgentResult:
    """AgentResult exitoso con `result` como respuesta cruda."""
    return AgentResult(success=True, response=AgentResponse(result=result, message=message))


class FakeAgentClient(AgentClient):
    """
    Devuelve las respuestas encoladas en orden y registra cada llamada.

    Una respuesta puede ser un AgentResult, una excepción (se lanza) o
    cualquier otro valor (se envuelve como resultado exitoso). Si `gate`
    es un asyncio.Event, cada llamada espera a que se setee.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = []
        self.gate = None

    def queue(self, *replies) -> None:
        self.replies.extend(replies)

    async def invoke(self, message, agent_id, context=None):
        self.calls.append({"message": message, "agent_id": agent_id, "context": context})
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else ok("")
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, AgentResult):
            return reply
        return ok(reply)


class FixedClock:
    """Reloj de prueba: devuelve siempre `now` hasta que se avanza."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# Fixtures de dominio


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 2, 21, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def agent() -> FakeAgentClient:
    return FakeAgentClient()


@pytest.fixture
def store() -> WorkflowStore:
    return WorkflowStore()


@pytest.fixture
def session(agent, clock) -> SupportSession:
    """Sesión vacía con el agente falso y el reloj fijo."""
    return SupportSession(
        agent,
        support_agent_id=SUPPORT_AGENT,
        approval_agent_id=APPROVAL_AGENT,
        session_id=SESSION_ID,
        clock=clock,
    )


@pytest.fixture
def demo_session(session) -> SupportSession:
    """Sesión con los datos de ejemplo cargados."""
    session.load_sample_data(True)
    return session


# Settings de prueba


@pytest.fixture
def test_settings() -> Settings:
    """Settings con valores seguros para testing (no necesita .env)."""
    return Settings(
        AGENT_BACKEND="http",
        AGENT_API_URL="http://agents.test/chat",
        SUPPORT_AGENT_ID=SUPPORT_AGENT,
        APPROVAL_AGENT_ID=APPROVAL_AGENT,
        SAMPLE_DATA=False,
    )


# TestClient con DI overrides


@pytest.fixture
def client(test_settings, agent, session) -> TestClient:
    """
    TestClient de FastAPI con dependency overrides.

    Reemplaza las dependencias reales:
    - get_settings → test_settings (sin .env)
    - get_agent_client → FakeAgentClient (sin red)
    - get_session → sesión de prueba con reloj fijo
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_agent_client] = lambda: agent
    app.dependency_overrides[get_session] = lambda: session

    with TestClient(app, raise_server_exceptions=False) as c:
        yield c

    # Limpiar overrides después del test
    app.dependency_overrides.clear()
