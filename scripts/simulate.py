"""
Attendance Simulation Script

Drives a development server (ENV_MODE=development) through a whole tenant
session: start, QR scan, config push, then a burst of concurrent customer
conversations through the simulation endpoint. Finishes by polling the chat
list the way the operator dashboard does.
Run from project root: python scripts/simulate.py

Author: Khalil Bannouri
Version: 4.0.0
"""

import asyncio
import sys
import random
import time
import argparse
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:3001"
TENANT_ID = "demo"
TOTAL_CHATS = 10
READY_TIMEOUT = 60.0

# Sample conversation openers
GREETINGS = ["Oi", "Olá", "Bom dia", "Boa tarde", "Boa noite"]
QUESTIONS = [
    "Quanto custa a pizza calabresa?",
    "Vocês entregam no centro?",
    "Qual o horário de funcionamento?",
    "Aceitam pix?",
    "Tem opção vegetariana?",
    "Qual o tempo de entrega?",
]
HELP_REQUESTS = ["Quero falar com atendente", "Preciso de ajuda", "HUMANO por favor"]

DEMO_CONFIG = {
    "name": "Jataí Food",
    "menuLink": "https://jataifood.com/cardapio",
    "hours": "Ter a Dom, 18h às 23h",
    "address": "Rua das Flores, 100",
    "isActive": True,
    "welcomeMessage": "Olá! Bem-vindo ao Jataí Food 🍔",
}


def generate_chat_id() -> str:
    """Generate a random Brazilian WhatsApp chat id."""
    return f"5564{random.randint(900000000, 999999999)}@c.us"


def generate_conversation() -> list[str]:
    """Generate the messages one customer sends."""
    messages = [random.choice(GREETINGS), random.choice(QUESTIONS)]
    if random.random() < 0.3:
        messages.append(random.choice(HELP_REQUESTS))
        messages.append(random.choice(QUESTIONS))  # should be ignored by the bot
    return messages


# =============================================================================
# SESSION SETUP
# =============================================================================

async def wait_until_ready(client: httpx.AsyncClient, tenant_id: str) -> bool:
    """Poll /status like the dashboard until the session is READY."""
    deadline = time.time() + READY_TIMEOUT
    last_status = None

    while time.time() < deadline:
        response = await client.get(f"{API_BASE_URL}/sessions/{tenant_id}/status")
        data = response.json()
        status = data.get("status")

        if status != last_status:
            print(f"   Status: {status}")
            last_status = status

        if status == "QR_READY" and data.get("qr"):
            print(f"   📱 QR: {data['qr'][:40]}...")
        elif status == "READY":
            return True
        elif status == "DISCONNECTED":
            print(f"   ❌ Disconnected: {data.get('error')}")
            return False

        await asyncio.sleep(1)

    print(f"   ❌ Session not ready after {READY_TIMEOUT}s")
    return False


async def setup_session(client: httpx.AsyncClient, tenant_id: str) -> bool:
    print("\n1️⃣ Health Check...")
    response = await client.get(f"{API_BASE_URL}/health")
    if response.status_code != 200:
        print(f"   ❌ Failed: {response.text}")
        return False
    data = response.json()
    print(f"   ✅ Status: {data.get('status')}")
    print(f"   WhatsApp: {data.get('whatsapp_backend')}")
    print(f"   Generation: {data.get('generation_service')}")

    print("\n2️⃣ Pushing tenant config...")
    response = await client.post(f"{API_BASE_URL}/tenants/{tenant_id}/config", json=DEMO_CONFIG)
    if response.status_code != 200:
        print(f"   ❌ Failed: {response.text}")
        return False
    print("   ✅ Config saved")

    print("\n3️⃣ Starting session...")
    response = await client.post(f"{API_BASE_URL}/sessions/{tenant_id}/start")
    print(f"   Start: {response.json().get('status')}")

    return await wait_until_ready(client, tenant_id)


# =============================================================================
# CONVERSATION SIMULATION
# =============================================================================

async def run_conversation(
    client: httpx.AsyncClient,
    tenant_id: str,
    chat_num: int
) -> dict[str, Any]:
    """Send one customer's messages, one after another."""
    chat_id = generate_chat_id()
    messages = generate_conversation()
    start_time = time.time()

    try:
        for body in messages:
            response = await client.post(
                f"{API_BASE_URL}/simulation/{tenant_id}/messages",
                json={"chatId": chat_id, "body": body},
                timeout=30.0
            )
            if response.status_code != 200:
                return {
                    "chat_num": chat_num,
                    "chat_id": chat_id,
                    "success": False,
                    "error": response.text[:100],
                    "time": round(time.time() - start_time, 3),
                }
            await asyncio.sleep(random.uniform(0.2, 1.0))

        return {
            "chat_num": chat_num,
            "chat_id": chat_id,
            "success": True,
            "messages": len(messages),
            "time": round(time.time() - start_time, 3),
        }
    except httpx.HTTPError as e:
        return {
            "chat_num": chat_num,
            "chat_id": chat_id,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def print_chat_overview(client: httpx.AsyncClient, tenant_id: str) -> None:
    """Poll the chat list and escalations like the attendance panel."""
    response = await client.get(f"{API_BASE_URL}/sessions/{tenant_id}/chats")
    if response.status_code != 200:
        print(f"   ⚠️ Chats unavailable: {response.text[:100]}")
        return

    chats = response.json().get("chats", [])
    print(f"\n💬 Chats: {len(chats)}")
    for chat in chats:
        flag = "🆘" if chat.get("helpRequested") else "  "
        print(f"   {flag} {chat['number']}: {chat.get('lastMessage', '')[:60]}")

    response = await client.get(f"{API_BASE_URL}/sessions/{tenant_id}/escalations")
    escalations = response.json().get("escalations", [])
    print(f"\n🔔 Waiting for an attendant: {len(escalations)}")


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    tenant_id: str = TENANT_ID,
    num_chats: int = TOTAL_CHATS,
    settle_seconds: float = 5.0,
    stop_after: bool = False
) -> dict[str, Any]:
    """
    Run the attendance simulation.

    Args:
        tenant_id: Tenant to simulate
        num_chats: Number of concurrent customers
        settle_seconds: Time left for the bot to answer before polling chats
        stop_after: Stop the session at the end
    """
    print("=" * 70)
    print("🔥 ATTENDANCE SIMULATION")
    print("=" * 70)
    print(f"📋 Customers: {num_chats}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"🏪 Tenant: {tenant_id}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(timeout=30.0) as client:
        if not await setup_session(client, tenant_id):
            print("\n❌ Session setup failed.")
            return {"total": num_chats, "successful": 0, "failed": num_chats, "results": []}

        print(f"\n🚀 Firing {num_chats} concurrent conversations...\n")
        start_time = time.time()
        tasks = [run_conversation(client, tenant_id, i + 1) for i in range(num_chats)]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        print(f"⏳ Waiting {settle_seconds}s for replies...")
        await asyncio.sleep(settle_seconds)
        await print_chat_overview(client, tenant_id)

        if stop_after:
            response = await client.post(f"{API_BASE_URL}/sessions/{tenant_id}/stop")
            print(f"\n🛑 Session stopped: {response.json().get('status')}")

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"\n✅ Successful Conversations: {len(successful)}/{num_chats}")
    print(f"❌ Failed Conversations: {len(failed)}/{num_chats}")
    print(f"⏱️  Total Time: {total_time}s")

    if failed:
        print("\n⚠️  Failed Conversation Details (showing first 5):")
        for f in failed[:5]:
            print(f"   Chat #{f['chat_num']} ({f['chat_id']}): {f.get('error', 'Unknown error')}")

    print("=" * 70)

    return {
        "total": num_chats,
        "successful": len(successful),
        "failed": len(failed),
        "total_time": total_time,
        "results": results,
    }


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Attendance Simulation Script")
    parser.add_argument("--tenant", default=TENANT_ID, help="Tenant id")
    parser.add_argument("--chats", type=int, default=TOTAL_CHATS, help="Number of customers")
    parser.add_argument("--settle", type=float, default=5.0, help="Seconds to wait for replies")
    parser.add_argument("--stop", action="store_true", help="Stop the session at the end")
    args = parser.parse_args()

    summary = asyncio.run(run_simulation(
        tenant_id=args.tenant,
        num_chats=args.chats,
        settle_seconds=args.settle,
        stop_after=args.stop,
    ))
    sys.exit(0 if summary["failed"] == 0 else 1)
