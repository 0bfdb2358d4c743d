"""
Fund Policy — ¿El Pro Fund está listo para pagarse?

ready = balance >= umbral de monto AND conversiones >= umbral de conversiones

La ventana de tiempo es un parámetro explícito: con `window_days=None`
(política actual) cuenta todo el ledger con los contadores incrementales;
con un número solo cuenta las ventas dentro de la ventana móvil.
"""

import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel

from agent.models import AppSettings, utc_now
from agent.state import WorkflowState


class FundStatus(BaseModel):
    ready: bool
    balance: float
    conversion_count: int
    threshold_amount: float
    threshold_count: int
    progress: float
    window_days: Optional[int] = None


def is_fund_ready(
    balance: float,
    conversion_count: int,
    threshold_amount: float,
    threshold_count: int,
) -> bool:
    return balance >= threshold_amount and conversion_count >= threshold_count


def aggregate_window(
    state: WorkflowState, now: datetime, window_days: int
) -> tuple[float, int]:
    """(balance, conversiones) de las ventas con timestamp dentro de la ventana."""
    since = now - timedelta(days=window_days)
    entries = [
        e
        for e in state.revenue_entries
        if e.timestamp is not None and since <= e.timestamp <= now
    ]
    return math.fsum(e.pro_fund_allocation or 0.0 for e in entries), len(entries)


def evaluate_fund(
    state: WorkflowState,
    settings: AppSettings,
    now: Optional[datetime] = None,
    window_days: Optional[int] = None,
) -> FundStatus:
    """Estado del Pro Fund para el dashboard."""
    if window_days is None:
        balance, count = state.pro_fund_balance, state.conversion_count
    else:
        balance, count = aggregate_window(state, now or utc_now(), window_days)

    threshold = settings.pro_fund_threshold
    return FundStatus(
        ready=is_fund_ready(
            balance, count, threshold, settings.conversion_count_threshold
        ),
        balance=balance,
        conversion_count=count,
        threshold_amount=threshold,
        threshold_count=settings.conversion_count_threshold,
        progress=min(1.0, balance / max(threshold, 1)),
        window_days=window_days,
    )
