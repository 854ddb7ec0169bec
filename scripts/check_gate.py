#!/usr/bin/env python3
"""Run one gate check from the command line.

Usage:
    python scripts/check_gate.py store_threat store-123 payout

Prints the decision. Exits 0 if allowed, 2 if denied, 1 on error.
Counts against the entity's capacity bucket like any other check.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from threatgate.db.session import SessionLocal, engine
from threatgate.engine.gate import GateDecision, check
from threatgate.profiles import load_profile


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("profile")
    parser.add_argument("entity_id")
    parser.add_argument("operation")
    return parser.parse_args(argv)


async def _check(profile_name: str, entity_id: str, operation: str) -> GateDecision:
    profile = load_profile(profile_name)
    try:
        async with SessionLocal() as db:
            return await check(db, profile, entity_id, operation)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        decision = asyncio.run(_check(args.profile, args.entity_id, args.operation))
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    print(
        f"allowed={decision.allowed} "
        f"code={decision.reason_code} "
        f"state={decision.state} "
        f"throttle_factor={decision.throttle_factor} "
        f"reason={decision.reason}"
    )
    return 0 if decision.allowed else 2


if __name__ == "__main__":
    sys.exit(main())
