"""
Concurrency Simulation Script

Places a burst of customer orders against a running server, then races
two staff members on every order (one confirms, one cancels) and checks
that exactly one of them wins each race.

Run from project root: python scripts/simulate.py --restaurant-id 1
"""

import argparse
import asyncio
import random
import sys
import time
from typing import Any, Optional

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:8001"
TOTAL_ORDERS = 50

FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
LAST_NAMES = ["Smith", "Johnson", "Williams", "Brown", "Jones", "Garcia", "Miller", "Davis", "Wilson", "Taylor"]


def generate_random_customer() -> dict[str, str]:
    """Generate random customer info."""
    return {
        "customer_name": f"{random.choice(FIRST_NAMES)} {random.choice(LAST_NAMES)}",
        "customer_phone": f"555-{random.randint(100, 999)}-{random.randint(1000, 9999)}",
    }


def generate_random_items(menu: list[dict]) -> list[dict]:
    """Pick 1-4 menu items with random quantities."""
    picks = random.sample(menu, k=min(len(menu), random.randint(1, 4)))
    return [{"menu_item_id": item["id"], "quantity": random.randint(1, 3)} for item in picks]


# =============================================================================
# SETUP
# =============================================================================

async def login(client: httpx.AsyncClient, email: str, password: str) -> dict[str, str]:
    response = await client.post(f"{API_BASE_URL}/api/auth/login", json={"email": email, "password": password})
    response.raise_for_status()
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def load_menu(client: httpx.AsyncClient, restaurant_id: int) -> tuple[list[dict], Optional[str]]:
    response = await client.get(f"{API_BASE_URL}/api/public/restaurants/{restaurant_id}/menu")
    response.raise_for_status()
    data = response.json()
    return data["items"], data["restaurant"]["name"]


async def load_tables(client: httpx.AsyncClient, restaurant_id: int, headers: dict) -> list[dict]:
    response = await client.get(f"{API_BASE_URL}/api/restaurants/{restaurant_id}/tables", headers=headers)
    response.raise_for_status()
    return [t for t in response.json() if t["status"] != "maintenance"]


# =============================================================================
# ORDER BURST
# =============================================================================

async def place_order(
    client: httpx.AsyncClient,
    restaurant_id: int,
    menu: list[dict],
    tables: list[dict],
    order_num: int,
) -> dict[str, Any]:
    payload = {
        **generate_random_customer(),
        "table_id": random.choice(tables)["id"],
        "items": generate_random_items(menu),
    }
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/public/restaurants/{restaurant_id}/orders",
            json=payload,
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)
        if response.status_code == 201:
            data = response.json()
            return {"order_num": order_num, "success": True, "order_id": data["order_id"],
                    "total": data["total"], "time": elapsed}
        return {"order_num": order_num, "success": False, "error": response.text[:100], "time": elapsed}
    except httpx.HTTPError as e:
        elapsed = round(time.time() - start_time, 3)
        return {"order_num": order_num, "success": False, "error": str(e)[:100], "time": elapsed}


# =============================================================================
# STATUS RACES
# =============================================================================

async def change_status(client: httpx.AsyncClient, headers: dict, order_id: int, target: str) -> dict[str, Any]:
    response = await client.post(
        f"{API_BASE_URL}/api/orders/{order_id}/status",
        json={"status": target, "expected_status": "pending"},
        headers=headers,
        timeout=30.0,
    )
    body = response.json()
    return {
        "target": target,
        "code": response.status_code,
        "changed": response.status_code == 200 and body.get("changed", False),
    }


async def race_order(client: httpx.AsyncClient, headers: dict, order_id: int) -> dict[str, Any]:
    """Confirm and cancel the same pending order at the same time."""
    confirm, cancel = await asyncio.gather(
        change_status(client, headers, order_id, "confirmed"),
        change_status(client, headers, order_id, "cancelled"),
    )
    winners = [r["target"] for r in (confirm, cancel) if r["changed"]]
    return {"order_id": order_id, "winners": winners, "codes": (confirm["code"], cancel["code"])}


async def run_simulation(restaurant_id: int, num_orders: int, email: str, password: str) -> dict[str, Any]:
    print("\n" + "=" * 70)
    print("🔥 CONCURRENCY SIMULATION")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        headers = await login(client, email, password)
        menu, name = await load_menu(client, restaurant_id)
        tables = await load_tables(client, restaurant_id, headers)
        if not menu or not tables:
            print("❌ Restaurant needs at least one available menu item and one table")
            return {"success": False}

        print(f"🏪 {name}: {len(menu)} menu items, {len(tables)} tables")
        print(f"📦 Placing {num_orders} orders concurrently...")

        start = time.time()
        results = await asyncio.gather(*[
            place_order(client, restaurant_id, menu, tables, i + 1) for i in range(num_orders)
        ])
        placed = [r for r in results if r["success"]]
        failed = [r for r in results if not r["success"]]
        print(f"   ✅ {len(placed)} placed, ❌ {len(failed)} failed in {round(time.time() - start, 3)}s")
        for f in failed[:5]:
            print(f"   Order #{f['order_num']}: {f.get('error', 'Unknown error')}")

        print(f"\n🏁 Racing confirm vs cancel on {len(placed)} orders...")
        races = await asyncio.gather(*[race_order(client, headers, r["order_id"]) for r in placed])

    clean = [r for r in races if len(r["winners"]) == 1]
    broken = [r for r in races if len(r["winners"]) != 1]

    print("\n" + "=" * 70)
    print("📊 SIMULATION RESULTS")
    print("=" * 70)
    print(f"   Races with exactly one winner: {len(clean)}/{len(races)}")
    if placed:
        print(f"   💰 Total ordered: ${sum(r['total'] for r in placed):.2f}")
    for r in broken[:5]:
        print(f"   ⚠️ Order #{r['order_id']}: winners={r['winners']} codes={r['codes']}")
    print("=" * 70)

    return {"success": not broken and not failed, "orders": len(placed), "races": len(races)}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concurrency Simulation Script")
    parser.add_argument("--restaurant-id", type=int, required=True, help="Restaurant to order from")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--email", default="admin@restrona.local", help="Staff account for status changes")
    parser.add_argument("--password", default="restrona-admin", help="Password for --email")
    args = parser.parse_args()

    outcome = asyncio.run(run_simulation(args.restaurant_id, args.orders, args.email, args.password))
    sys.exit(0 if outcome.get("success") else 1)
