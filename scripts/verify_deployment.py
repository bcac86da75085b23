"""
Smoke-check a running VaultGate server seeded with the demo workspace.

Usage: python scripts/verify_deployment.py [base_url]
"""

import asyncio
import logging
import sys

import httpx

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger("DeploymentVerifier")

DEFAULT_URL = "http://127.0.0.1:8000"

LARGE_ETH_TRANSFER = {
    "initiator": "Omer",
    "source_wallet": "Treasury",
    "destination": "0xDef01a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F",
    "destination_is_internal": False,
    "amount_usd": "15000",
    "asset": "ETH",
}


async def verify_health(client: httpx.AsyncClient) -> bool:
    logger.info("Checking health route...")
    try:
        resp = await client.get("/")
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Server unreachable: {e}")
        return False
    logger.info(f"Server online: {resp.json()}")
    return True


async def verify_decision(client: httpx.AsyncClient, request: dict, expected: str) -> bool:
    """Simulate a transfer and compare the verdict."""
    try:
        resp = await client.post("/api/policies/simulate", json=request)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Simulation failed: {e}")
        return False

    decision = resp.json()
    if decision["action"] != expected:
        logger.error(f"Expected {expected}, got {decision['action']}: {decision['reason']}")
        return False
    logger.info(f"Simulation OK: {decision['reason']}")
    return True


async def verify_ledger(client: httpx.AsyncClient) -> bool:
    logger.info("Checking audit ledger chain...")
    try:
        resp = await client.get("/api/ledger/verify")
        resp.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"Ledger check failed: {e}")
        return False

    result = resp.json()
    if not result["is_valid"]:
        logger.error(f"Ledger chain broken at {result['broken_at']}: {result['error_message']}")
        return False
    logger.info(f"Ledger chain valid ({result['total_entries']} entries)")
    return True


async def main(base_url: str) -> int:
    print("=" * 60)
    print(f"VaultGate deployment check: {base_url}")
    print("=" * 60)

    async with httpx.AsyncClient(base_url=base_url, timeout=5.0) as client:
        checks = [
            ("health", lambda: verify_health(client)),
            ("large transfer", lambda: verify_decision(
                client, LARGE_ETH_TRANSFER, "require_approval"
            )),
            ("usdt to external", lambda: verify_decision(
                client, dict(LARGE_ETH_TRANSFER, asset="USDT"), "deny"
            )),
            ("ledger", lambda: verify_ledger(client)),
        ]
        for name, check in checks:
            if not await check():
                print(f"\nABORTING: {name} check failed.")
                return 1

    print("\nAll checks passed.")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else DEFAULT_URL)))
