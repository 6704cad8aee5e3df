"""Load test: hammer the Wax ledger with concurrent claims and spends.

Creates users, fires overlapping daily-claim and spend requests at each
wallet, then reconciles every wallet through the verify endpoint.  A
correct ledger ends with every wallet consistent and exactly one daily
claim credited per user.
Usage: python -m scripts.load_test [--users 20] [--concurrency 10] [--base-url http://localhost:8000]
"""
import argparse
import asyncio
import random
import statistics
import sys
import time
import uuid
from typing import Any

import httpx


DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_USERS = 20
DEFAULT_CONCURRENCY = 10

SPEND_ACTIONS = ["pin_review", "boost_review_24h", "tasteid_analysis"]


async def create_user(client: httpx.AsyncClient, base_url: str, index: int) -> str | None:
    """Create a single user via the API and return its id."""
    name = f"load_{index}_{uuid.uuid4().hex[:8]}"
    payload = {"username": name, "email": f"{name}@test.com"}
    try:
        resp = await client.post(f"{base_url}/api/v1/users", json=payload)
        if resp.status_code in (200, 201):
            return resp.json()["id"]
        print(f"  [WARN] User {index}: status {resp.status_code}")
        return None
    except httpx.HTTPError as e:
        print(f"  [ERROR] User {index}: {e}")
        return None


async def timed(timings: list[float], request) -> httpx.Response | None:
    t0 = time.monotonic()
    try:
        return await request
    except httpx.HTTPError:
        return None
    finally:
        timings.append(time.monotonic() - t0)


async def hammer_wallet(
    client: httpx.AsyncClient,
    base_url: str,
    user_id: str,
    concurrency: int,
    results: dict[str, Any],
) -> None:
    """Fire overlapping claim-daily and spend requests at one wallet."""
    wax = f"{base_url}/api/v1/wax/{user_id}"

    claims = [
        timed(results["timings"]["claim"], client.post(f"{wax}/claim-daily"))
        for _ in range(concurrency)
    ]
    spends = [
        timed(
            results["timings"]["spend"],
            client.post(f"{wax}/spend", json={"action": random.choice(SPEND_ACTIONS)}),
        )
        for _ in range(concurrency)
    ]
    responses = await asyncio.gather(*claims, *spends)

    credited = 0
    for resp in responses[:concurrency]:
        if resp is None or resp.status_code != 200:
            results["errors"].append(f"claim {user_id[:8]}: {resp and resp.status_code}")
            continue
        if not resp.json()["already_claimed"]:
            credited += 1
    if credited != 1:
        results["errors"].append(f"claim {user_id[:8]}: credited {credited} times")
    results["claims_credited"] += credited

    for resp in responses[concurrency:]:
        if resp is not None and resp.status_code == 200:
            results["spends_succeeded"] += 1
        elif resp is not None and resp.status_code == 400:
            results["spends_rejected"] += 1
        else:
            results["errors"].append(f"spend {user_id[:8]}: {resp and resp.status_code}")


async def run_load_test(base_url: str, users: int, concurrency: int) -> dict[str, Any]:
    """Run the full load test pipeline."""
    print(f"\n{'='*60}")
    print(f"WAXFEED Ledger Load Test — {users} wallets x {concurrency} concurrent")
    print(f"Target: {base_url}")
    print(f"{'='*60}\n")

    results = {
        "users": users,
        "users_created": 0,
        "claims_credited": 0,
        "spends_succeeded": 0,
        "spends_rejected": 0,
        "wallets_consistent": 0,
        "errors": [],
        "timings": {"claim": [], "spend": [], "verify": []},
    }

    async with httpx.AsyncClient(timeout=30.0) as client:
        # Phase 1: Create users
        print(f"[1/3] Creating {users} users...")
        user_ids = []
        for i in range(users):
            uid = await create_user(client, base_url, i)
            if uid:
                user_ids.append(uid)
                results["users_created"] += 1
        print(f"  -> {results['users_created']} users created\n")

        # Phase 2: Concurrent claims and spends
        print(f"[2/3] Hammering {len(user_ids)} wallets...")
        await asyncio.gather(
            *(hammer_wallet(client, base_url, uid, concurrency, results) for uid in user_ids)
        )
        print(f"  -> {results['claims_credited']} claims credited, "
              f"{results['spends_succeeded']} spends ok, "
              f"{results['spends_rejected']} rejected\n")

        # Phase 3: Reconcile
        print(f"[3/3] Verifying {len(user_ids)} wallets...")
        for uid in user_ids:
            resp = await timed(
                results["timings"]["verify"],
                client.post(f"{base_url}/api/v1/wax/{uid}/verify"),
            )
            if resp is not None and resp.status_code == 200 and resp.json()["consistent"]:
                results["wallets_consistent"] += 1
            else:
                results["errors"].append(f"verify {uid[:8]}: {resp and resp.status_code}")
        print(f"  -> {results['wallets_consistent']} wallets consistent\n")

    # Summary
    print(f"{'='*60}")
    print("LOAD TEST RESULTS")
    print(f"{'='*60}")
    print(f"Users created:      {results['users_created']}/{users}")
    print(f"Claims credited:    {results['claims_credited']}/{results['users_created']}")
    print(f"Wallets consistent: {results['wallets_consistent']}/{results['users_created']}")

    for phase, timings in results["timings"].items():
        if timings:
            print(f"\n{phase} latency:")
            print(f"  mean:   {statistics.mean(timings):.3f}s")
            print(f"  median: {statistics.median(timings):.3f}s")
            print(f"  p95:    {sorted(timings)[int(len(timings)*0.95)]:.3f}s")
            print(f"  max:    {max(timings):.3f}s")

    if results["errors"]:
        print(f"\nErrors ({len(results['errors'])}):")
        for e in results["errors"][:10]:
            print(f"  - {e}")

    print(f"\n{'='*60}\n")
    return results


def main():
    parser = argparse.ArgumentParser(description="WAXFEED Ledger Load Test")
    parser.add_argument("--users", type=int, default=DEFAULT_USERS, help="Number of wallets")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY,
                        help="Concurrent requests of each kind per wallet")
    parser.add_argument("--base-url", type=str, default=DEFAULT_BASE_URL, help="API base URL")
    args = parser.parse_args()

    results = asyncio.run(run_load_test(args.base_url, args.users, args.concurrency))

    if results["errors"] or results["wallets_consistent"] != results["users_created"]:
        print("FAIL: ledger invariants violated under load")
        sys.exit(1)
    print("PASS: one claim per wallet, every wallet consistent")


if __name__ == "__main__":
    main()
