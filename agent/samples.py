"""
Datos de ejemplo para el modo demo del console.

Tickets, ledger, aprobaciones pendientes y un transcript corto. El
balance del Pro Fund coincide con la suma del ledger (43.80).
"""

from datetime import datetime, timezone

from agent.models import (
    ApprovalRequest,
    ChatMessage,
    Citation,
    RevenueEntry,
    Role,
    Ticket,
    UpsellOffer,
)
from agent.state import WorkflowState


def _at(day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 2, day, hour, minute, tzinfo=timezone.utc)


SAMPLE_TICKETS = (
    Ticket(ticket_id="TKT-001", category="billing", subject="Refund request for order #4521", status="pending_approval", priority="high", created_at=_at(19, 9)),
    Ticket(ticket_id="TKT-002", category="technical", subject="API integration not working", status="in_progress", priority="medium", created_at=_at(19, 10)),
    Ticket(ticket_id="TKT-003", category="account", subject="Password reset issue", status="open", priority="low", created_at=_at(20, 8)),
    Ticket(ticket_id="TKT-004", category="general", subject="Feature request: dark mode", status="resolved", priority="low", created_at=_at(18, 16)),
)

SAMPLE_REVENUE = (
    RevenueEntry(amount=97, product="Concierge Setup", pro_fund_allocation=19.40, timestamp=_at(20, 10, 30)),
    RevenueEntry(amount=25, product="Add-On Pack", pro_fund_allocation=5.00, timestamp=_at(19, 15, 15)),
    RevenueEntry(amount=97, product="Concierge Setup", pro_fund_allocation=19.40, timestamp=_at(18, 11)),
)

SAMPLE_APPROVALS = (
    ApprovalRequest(
        request_type="refund",
        reason="Product did not meet expectations",
        order_id="#4521",
        desired_outcome="Full refund of $97",
        summary=(
            "Customer requesting full refund for Concierge Setup package. "
            "Purchased 5 days ago, claims features did not match description."
        ),
        customer_name="Sarah Mitchell",
        ticket_id="TKT-001",
        timestamp=_at(19, 14, 45),
    ),
    ApprovalRequest(
        request_type="account_change",
        reason="Needs enterprise tier upgrade",
        order_id="#4530",
        desired_outcome="Upgrade to enterprise with prorated billing",
        summary=(
            "Long-term customer requesting enterprise upgrade with prorated "
            "billing for remainder of current billing cycle."
        ),
        customer_name="James Anderson",
        ticket_id="TKT-005",
        timestamp=_at(20, 9, 20),
    ),
)

SAMPLE_CHAT = (
    ChatMessage(id="s1", role=Role.AGENT, content="Welcome to Corey Support! How can I help you today?", timestamp=_at(20, 9)),
    ChatMessage(id="s2", role=Role.USER, content="I need help with my recent order. The product setup guide seems incomplete.", timestamp=_at(20, 9, 1)),
    ChatMessage(
        id="s3",
        role=Role.AGENT,
        content=(
            "I understand your concern about the setup guide. Let me pull up the relevant "
            "documentation for you.\n\nBased on our knowledge base, here are the steps you "
            "might be missing:\n\n1. **Initial Configuration** - Navigate to Settings > Setup "
            "Wizard\n2. **API Key Generation** - Found under Developer Tools\n3. **Integration "
            "Testing** - Use our sandbox environment first\n\nWould you like me to walk you "
            "through any of these steps in detail?"
        ),
        timestamp=_at(20, 9, 2),
        citations=[
            Citation(
                source="Setup Guide v3.2",
                excerpt="The setup wizard provides step-by-step configuration for new users...",
            )
        ],
    ),
    ChatMessage(id="s4", role=Role.USER, content="That helps! Can you also tell me about the Concierge Setup package?", timestamp=_at(20, 9, 5)),
    ChatMessage(
        id="s5",
        role=Role.AGENT,
        content=(
            "Great question! Our Concierge Setup package provides hands-on assistance to get "
            "you fully configured. Here is what is included:"
        ),
        timestamp=_at(20, 9, 5),
        upsell_offer=UpsellOffer(
            product_name="Concierge Setup",
            price="$97",
            description=(
                "Full hands-on setup assistance including API configuration, integration "
                "testing, and 30-day priority support."
            ),
            checkout_url="https://checkout.stripe.com/concierge-setup",
        ),
    ),
)


def sample_state() -> WorkflowState:
    """Estado demo con el balance derivado del ledger."""
    return WorkflowState(
        messages=SAMPLE_CHAT,
        tickets=SAMPLE_TICKETS,
        pending_approvals=SAMPLE_APPROVALS,
        revenue_entries=SAMPLE_REVENUE,
        pro_fund_balance=sum(e.pro_fund_allocation for e in SAMPLE_REVENUE),
        conversion_count=len(SAMPLE_REVENUE),
    )
