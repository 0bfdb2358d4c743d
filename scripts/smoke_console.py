"""
Script de prueba manual para el API del console de soporte Corey.

Recorre el flujo completo contra una API corriendo (python -m api.main):
health → datos demo → chat → notas + resolución de una aprobación → dashboard.
"""

import sys
from typing import Dict, Optional

import requests

API_BASE_URL = "http://localhost:8000"


def check_health() -> bool:
    """Prueba el health check"""
    print("\n" + "=" * 70)
    print("🏥 Health Check")
    print("=" * 70)

    response = requests.get(f"{API_BASE_URL}/health")
    if response.status_code != 200:
        print(f"❌ Error: {response.status_code}")
        return False

    data = response.json()
    print(f"✅ Status: {data['status']}")
    print(f"📦 Version: {data['version']}")
    for component, status in data["components"].items():
        print(f"   - {component}: {status}")
    return True


def send_chat(message: str) -> Optional[Dict]:
    """Envía un mensaje y muestra lo que se agregó al transcript"""
    print(f"\n💬 User: {message}")
    print("-" * 70)

    response = requests.post(f"{API_BASE_URL}/chat", json={"message": message}, timeout=90)
    if response.status_code != 200:
        print(f"❌ HTTP {response.status_code}: {response.json().get('detail')}")
        return None

    data = response.json()
    for msg in data["messages"][1:]:
        print(f"[{msg['role']}] {msg['content']}")
        if msg.get("upsell_offer"):
            offer = msg["upsell_offer"]
            print(f"   🛒 {offer['product_name']} {offer['price']} → {offer['checkout_url']}")
        if msg.get("ticket"):
            print(f"   🎫 {msg['ticket']['ticket_id']}: {msg['ticket']['status']}")
    return data


def resolve(order_id: str, decision: str, notes: str) -> None:
    """Carga notas y resuelve una aprobación pendiente"""
    encoded = requests.utils.quote(order_id, safe="")
    print(f"\n✍️  {decision.upper()} {order_id} (notas: {notes})")

    requests.put(f"{API_BASE_URL}/approvals/{encoded}/notes", json={"notes": notes})
    response = requests.post(
        f"{API_BASE_URL}/approvals/{encoded}/resolve", json={"decision": decision}, timeout=90
    )
    data = response.json()
    if response.status_code == 200 and data["status"] == "resolved":
        print(f"✅ {data['resolved']['customer_response']}")
    else:
        print(f"❌ {data.get('error') or data.get('detail')}")


def show_dashboard() -> None:
    data = requests.get(f"{API_BASE_URL}/dashboard").json()
    fund = data["fund"]
    print("\n" + "=" * 70)
    print("📊 Dashboard")
    print("=" * 70)
    print(f"Tickets activos: {data['active_ticket_count']}")
    print(f"Revenue total: ${data['total_revenue']:.2f}")
    print(f"Aprobaciones pendientes: {data['pending_approval_count']}")
    print(
        f"Pro Fund: ${fund['balance']:.2f} / ${fund['threshold_amount']:.2f} "
        f"({fund['conversion_count']}/{fund['threshold_count']} conversiones) "
        f"{'🎉 LISTO' if fund['ready'] else '⏳'}"
    )


def main() -> int:
    try:
        if not check_health():
            print("\n❌ Health check falló. Verifica que la API esté corriendo.")
            return 1

        requests.post(f"{API_BASE_URL}/demo", json={"enabled": True})

        send_chat("Can you tell me about the Concierge Setup package?")
        send_chat("I'd like a refund for order #4600, it didn't work for me.")

        resolve("#4521", "approved", "Verified purchase within refund window")
        show_dashboard()
        return 0

    except requests.exceptions.ConnectionError:
        print("\n❌ ERROR: No se puede conectar a la API")
        print(f"Verifica que esté corriendo en {API_BASE_URL}")
        print("\nEjecuta: python -m api.main")
        return 1


if __name__ == "__main__":
    sys.exit(main())
