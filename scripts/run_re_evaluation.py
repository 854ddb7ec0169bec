#!/usr/bin/env python3
"""Run the scheduled re-evaluation batch for one profile.

Usage:
    python scripts/run_re_evaluation.py store_threat
    python scripts/run_re_evaluation.py country_rollout --force

Exits 0 when every due entity was processed, 1 on a failed or partial run
or an invalid profile.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from threatgate.db.session import SessionLocal, engine
from threatgate.engine.re_evaluator import run_re_evaluation


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("profile", help="profile name (profiles/<name>.yaml)")
    parser.add_argument(
        "--force", action="store_true", help="evaluate every entity, not only those due"
    )
    return parser.parse_args(argv)


async def _run(profile: str, force: bool) -> dict:
    try:
        return await run_re_evaluation(SessionLocal, profile, force=force)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        result = asyncio.run(_run(args.profile, args.force))
        print(
            f"status={result['status']} "
            f"job_run_id={result['job_run_id']} "
            f"processed={result['processed']} "
            f"failed={result['failed']} "
            f"deferred={result['deferred']} "
            f"skipped={result['skipped']}"
        )
        if result.get("error"):
            print(f"error={result['error']}", file=sys.stderr)
        return 0 if result["status"] == "completed" else 1
    except Exception as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
