"""
Lunch Rush Simulation Script

Fires many concurrent checkouts at a small, scarce menu to exercise the
stock guard. Every request either succeeds or gets a 409; stock must end
at exactly (initial - sold) and never below zero.

Run the API first (canteen-api), then from project root:
    python scripts/simulate.py --orders 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

# Configuration
API_BASE_URL = "http://localhost:2022"
TOTAL_ORDERS = 50

DEPARTMENTS = ["IT", "HR", "Finance", "Operations"]
FIRST_NAMES = ["John", "Jane", "Mike", "Sarah", "Tom", "Emma", "David", "Lisa", "Chris", "Amy"]
MENU_ITEMS = [
    {"name": "Chicken Rice", "price": "8.99", "category": "Mains", "stock_quantity": 20},
    {"name": "Veggie Wrap", "price": "6.49", "category": "Mains", "stock_quantity": 15},
    {"name": "Tomato Soup", "price": "3.99", "category": "Starters", "stock_quantity": 10},
    {"name": "Brownie", "price": "2.50", "category": "Desserts", "stock_quantity": 8},
]


# =============================================================================
# SETUP
# =============================================================================

async def seed(client: httpx.AsyncClient, num_users: int) -> dict[str, Any]:
    """Create departments, users and a fresh menu for this run."""
    run_tag = datetime.now().strftime("%H%M%S")

    departments = []
    for name in DEPARTMENTS:
        response = await client.post(
            f"{API_BASE_URL}/api/departments", json={"name": f"{name}-{run_tag}"}
        )
        response.raise_for_status()
        departments.append(response.json())

    users = []
    for i in range(num_users):
        response = await client.post(f"{API_BASE_URL}/api/users", json={
            "name": f"{random.choice(FIRST_NAMES)} #{i}",
            "contact_number": f"{run_tag}-{i:04d}",
            "department_id": random.choice(departments)["id"],
        })
        response.raise_for_status()
        users.append(response.json())

    menu = []
    for item in MENU_ITEMS:
        response = await client.post(
            f"{API_BASE_URL}/api/menu-items",
            json={**item, "name": f"{item['name']} ({run_tag})"},
        )
        response.raise_for_status()
        menu.append(response.json())

    return {"users": users, "menu": menu}


def generate_cart(user_id: int, menu: list[dict]) -> dict[str, Any]:
    """Random cart of 1-3 lines with a pickup time an hour out."""
    lines = random.sample(menu, k=random.randint(1, min(3, len(menu))))
    pickup = datetime.now(timezone.utc) + timedelta(hours=1)
    return {
        "user_id": user_id,
        "pickup_or_delivery_time": pickup.isoformat(),
        "remarks": random.choice([None, "No onions", "Extra sauce", "Pickup at desk"]),
        "items": [
            {"menu_item_id": item["id"], "quantity": random.randint(1, 3)}
            for item in lines
        ],
    }


# =============================================================================
# CHECKOUT
# =============================================================================

async def send_order(
    client: httpx.AsyncClient,
    order_num: int,
    payload: dict[str, Any],
) -> dict[str, Any]:
    """Place one order and record the outcome."""
    start_time = time.time()

    try:
        response = await client.post(f"{API_BASE_URL}/api/orders", json=payload, timeout=30.0)
        elapsed = round(time.time() - start_time, 3)
        body = response.json()

        if response.status_code == 201:
            return {
                "order_num": order_num,
                "success": True,
                "order_id": body["id"],
                "total": float(body["total_amount"]),
                "sold": {i["menu_item_id"]: i["quantity"] for i in body["order_items"]},
                "time": elapsed,
            }
        return {
            "order_num": order_num,
            "success": False,
            "status": response.status_code,
            "error": str(body.get("detail"))[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "order_num": order_num,
            "success": False,
            "status": None,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


async def check_stock(
    client: httpx.AsyncClient,
    menu: list[dict],
    successful: list[dict],
) -> bool:
    """Compare live stock with initial stock minus everything sold."""
    response = await client.get(f"{API_BASE_URL}/api/menu-items")
    response.raise_for_status()
    live = {item["id"]: item["stock_quantity"] for item in response.json()}

    ok = True
    for item in menu:
        sold = sum(r["sold"].get(item["id"], 0) for r in successful)
        expected = item["stock_quantity"] - sold
        actual = live.get(item["id"])
        marker = "✅" if actual == expected and actual >= 0 else "❌"
        ok = ok and marker == "✅"
        print(f"   {marker} {item['name']}: start {item['stock_quantity']}, sold {sold}, left {actual}")
    return ok


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(num_orders: int = TOTAL_ORDERS, num_users: int = 10) -> bool:
    print("=" * 70)
    print("🔥 LUNCH RUSH SIMULATION - CONCURRENT CHECKOUT")
    print("=" * 70)
    print(f"📋 Total Orders: {num_orders}")
    print(f"🎯 Target: {API_BASE_URL}")
    print(f"⏰ Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        data = await seed(client, num_users)
        menu = data["menu"]
        payloads = [
            generate_cart(random.choice(data["users"])["id"], menu)
            for _ in range(num_orders)
        ]

        print("\n🚀 Firing orders...\n")
        start_time = time.time()
        results = await asyncio.gather(*(
            send_order(client, i + 1, payload) for i, payload in enumerate(payloads)
        ))
        total_time = round(time.time() - start_time, 2)

        successful = [r for r in results if r["success"]]
        rejected = [r for r in results if not r["success"] and r["status"] == 409]
        errored = [r for r in results if not r["success"] and r["status"] != 409]

        print("=" * 70)
        print("📊 SIMULATION RESULTS")
        print("=" * 70)
        print(f"\n✅ Placed: {len(successful)}/{num_orders}")
        print(f"🚫 Out of stock (409): {len(rejected)}/{num_orders}")
        print(f"❌ Other errors: {len(errored)}/{num_orders}")
        print(f"⏱️  Total Time: {total_time}s")

        if successful:
            avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
            revenue = sum(r["total"] for r in successful)
            print(f"\n📈 Average Response: {avg_time}s")
            print(f"   💰 Total Revenue: ${revenue:.2f}")

        if errored:
            print("\n⚠️  Unexpected failures (showing first 5):")
            for f in errored[:5]:
                print(f"   Order #{f['order_num']} [{f['status']}]: {f['error']}")

        print("\n📦 STOCK CHECK:")
        stock_ok = await check_stock(client, menu, successful)

    print("\n" + "=" * 70)
    passed = stock_ok and not errored
    print("✅ SIMULATION PASSED" if passed else "❌ SIMULATION FAILED")
    print("   Next: python scripts/verify.py")
    print("=" * 70)
    return passed


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Lunch Rush Simulation Script")
    parser.add_argument("--orders", type=int, default=TOTAL_ORDERS, help="Number of orders")
    parser.add_argument("--users", type=int, default=10, help="Number of users to register")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url
    ok = asyncio.run(run_simulation(num_orders=args.orders, num_users=args.users))
    sys.exit(0 if ok else 1)
