"""
Configuración centralizada del console de soporte Corey.

Usa Pydantic BaseSettings para:
- Validar las variables de entorno al startup
- Proveer tipos seguros y defaults documentados
- Leer .env sin load_dotenv() disperso
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from agent.models import AppSettings


# Raíz del proyecto (donde vive .env)
PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Configuración tipada y validada del console."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",  # Ignorar env vars no declaradas
    )

    # Agentes remotos
    AGENT_BACKEND: Literal["http", "groq"] = "http"
    AGENT_API_URL: str = "https://agent-prod.studio.lyzr.ai/v3/inference/chat/"
    AGENT_API_KEY: Optional[str] = None
    AGENT_TIMEOUT_SECONDS: float = 60.0
    SUPPORT_AGENT_ID: str = "69988c23bf6ce2c35b435ab9"
    APPROVAL_AGENT_ID: str = "69988c245d2326ad4d26cbc6"

    # LLM / Groq (solo con AGENT_BACKEND=groq)
    GROQ_API_KEY: Optional[str] = None
    LLM_MODEL: str = "llama-3.3-70b-versatile"

    # Console (defaults de AppSettings)
    GREETING: str = "Welcome to Corey Support! How can I help you today?"
    CONCIERGE_CHECKOUT_URL: str = "https://checkout.stripe.com/concierge-setup"
    ADDON_CHECKOUT_URL: str = "https://checkout.stripe.com/addon-pack"
    SHEETS_URL: str = ""
    PRO_FUND_PERCENTAGE: float = 20
    PRO_FUND_THRESHOLD: float = 120
    CONVERSION_COUNT_THRESHOLD: int = 3
    TIME_WINDOW_DAYS: int = 14
    FUND_WINDOW_ENFORCED: bool = False  # True → solo cuenta ventas dentro de la ventana

    # Sesión
    NOTICE_TTL_SECONDS: float = 3.0
    SAMPLE_DATA: bool = False

    # API
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    def app_settings(self) -> AppSettings:
        """AppSettings iniciales de la sesión."""
        return AppSettings(
            greeting=self.GREETING,
            concierge_checkout_url=self.CONCIERGE_CHECKOUT_URL,
            addon_checkout_url=self.ADDON_CHECKOUT_URL,
            sheets_url=self.SHEETS_URL,
            pro_fund_percentage=self.PRO_FUND_PERCENTAGE,
            pro_fund_threshold=self.PRO_FUND_THRESHOLD,
            conversion_count_threshold=self.CONVERSION_COUNT_THRESHOLD,
            time_window_days=self.TIME_WINDOW_DAYS,
        )


@lru_cache
def get_settings() -> Settings:
    """Singleton de configuración (cacheado)."""
    return Settings()
