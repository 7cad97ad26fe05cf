"""
Cart Concurrency Simulation Script

Fires many simultaneous "add to cart" requests for the same configuration
into one user's branch cart and checks that the cart ends up with exactly
one line whose quantity is the sum of all adds.

Run from project root against a running server:
    uvicorn pizzeria.main:app --port 8001
    python scripts/simulate.py --adds 50
"""

import argparse
import asyncio
import random
import sys
import time
from datetime import datetime
from typing import Any

import httpx

# Configuration
API_BASE_URL = "http://localhost:8001"
BRANCH_ID = "sim-branch"
ITEM_ID = "sim-margherita"
USER_ID = "sim-user"
TOTAL_ADDS = 50

EXTRAS = ["Olives", "Extra Cheese", "Jalapenos"]


async def seed_branch(client: httpx.AsyncClient, admin_key: str | None) -> None:
    """Create the simulation branch and menu item when missing."""
    headers = {"X-Admin-Key": admin_key} if admin_key else {}

    response = await client.get(f"{API_BASE_URL}/api/branches/{BRANCH_ID}")
    if response.status_code == 404:
        response = await client.post(
            f"{API_BASE_URL}/api/admin/branches",
            json={
                "id": BRANCH_ID,
                "name": "Simulation Branch",
                "address": "1 Test Street",
                "phone": "0110000000",
                "latitude": 6.9271,
                "longitude": 79.8612,
            },
            headers=headers,
        )
        response.raise_for_status()

    response = await client.post(
        f"{API_BASE_URL}/api/admin/branches/{BRANCH_ID}/menu/import",
        json={
            "documents": [
                {
                    "id": ITEM_ID,
                    "name": "Margherita",
                    "basePrice": 1000,
                    "available": True,
                    "category": "pizza",
                    "extras": EXTRAS,
                }
            ]
        },
        headers=headers,
    )
    response.raise_for_status()


async def send_add(
    client: httpx.AsyncClient,
    add_num: int,
    size: str,
    shuffle_extras: bool,
) -> dict[str, Any]:
    """Add one unit of the simulation configuration."""
    extras = EXTRAS[:2]
    if shuffle_extras:
        extras = random.sample(extras, len(extras))

    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/cart/{BRANCH_ID}/items",
            json={"item_id": ITEM_ID, "quantity": 1, "size": size, "extras": extras},
            timeout=30.0,
        )
        elapsed = round(time.time() - start_time, 3)

        if response.status_code == 201:
            data = response.json()
            return {
                "add_num": add_num,
                "success": True,
                "line_id": data.get("local_id"),
                "time": elapsed,
            }
        return {
            "add_num": add_num,
            "success": False,
            "error": response.text[:100],
            "time": elapsed,
        }
    except httpx.HTTPError as e:
        return {
            "add_num": add_num,
            "success": False,
            "error": str(e)[:100],
            "time": round(time.time() - start_time, 3),
        }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def run_simulation(
    num_adds: int = TOTAL_ADDS,
    size: str = "L",
    shuffle_extras: bool = True,
    admin_key: str | None = None,
    user_id: str = USER_ID,
) -> bool:
    """
    Run the concurrent add simulation.

    Returns:
        True when the cart holds a single line with the summed quantity
    """
    print("=" * 70)
    print("CART CONCURRENCY SIMULATION")
    print("=" * 70)
    print(f"Concurrent adds: {num_adds}")
    print(f"Target: {API_BASE_URL}")
    print(f"User: {user_id}")
    print(f"Size: {size}   Shuffle extras: {shuffle_extras}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient(headers={"X-User-Id": user_id}) as client:
        await seed_branch(client, admin_key)
        (await client.delete(f"{API_BASE_URL}/api/cart/{BRANCH_ID}")).raise_for_status()

        start_time = time.time()
        tasks = [send_add(client, i + 1, size, shuffle_extras) for i in range(num_adds)]
        results = await asyncio.gather(*tasks)
        total_time = round(time.time() - start_time, 2)

        response = await client.get(f"{API_BASE_URL}/api/cart/{BRANCH_ID}")
        response.raise_for_status()
        cart = response.json()

    successful = [r for r in results if r["success"]]
    failed = [r for r in results if not r["success"]]

    print(f"\nSuccessful adds: {len(successful)}/{num_adds}")
    print(f"Failed adds: {len(failed)}/{num_adds}")
    print(f"Total time: {total_time}s")

    if successful:
        avg_time = round(sum(r["time"] for r in successful) / len(successful), 3)
        print(f"Average response: {avg_time}s")

    if failed:
        print("\nFailed add details (showing first 5):")
        for f in failed[:5]:
            print(f"   Add #{f['add_num']}: {f.get('error', 'Unknown error')}")

    lines = cart["lines"]
    print("\n" + "=" * 70)
    print("CART STATE")
    print("=" * 70)
    for line in lines:
        print(
            f"   line {line['local_id']}: {line['name']} ({line['size']}) "
            f"[{line['extras']}] x{line['quantity']} @ {line['unit_price']}"
        )
    print(f"   subtotal={cart['subtotal']} delivery={cart['delivery_fee']} total={cart['total']}")

    line_ids = {r["line_id"] for r in successful}
    ok = (
        len(lines) == 1
        and lines[0]["quantity"] == len(successful)
        and len(line_ids) == 1
    )
    print("\n" + ("PASS: one merged line" if ok else "FAIL: cart lines were not merged"))
    print("=" * 70)
    return ok


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Cart Concurrency Simulation")
    parser.add_argument("--adds", type=int, default=TOTAL_ADDS, help="Number of concurrent adds")
    parser.add_argument("--size", default="L", help="Size label to add")
    parser.add_argument("--ordered-extras", action="store_true", help="Send extras in a fixed order")
    parser.add_argument("--admin-key", default=None, help="X-Admin-Key for seeding")
    parser.add_argument("--user", default=USER_ID, help="X-User-Id whose cart is filled")
    parser.add_argument("--url", default=API_BASE_URL, help="API base URL")
    args = parser.parse_args()

    API_BASE_URL = args.url

    passed = asyncio.run(
        run_simulation(
            num_adds=args.adds,
            size=args.size,
            shuffle_extras=not args.ordered_extras,
            admin_key=args.admin_key,
            user_id=args.user,
        )
    )
    sys.exit(0 if passed else 1)
