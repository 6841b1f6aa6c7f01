#!/usr/bin/env python3
"""
Run one scheduled batch job by hand and print its stats.

Usage:
    python scripts/run_job.py extract [--batch-size N]
    python scripts/run_job.py summarize
    python scripts/run_job.py snapshot
    python scripts/run_job.py proactive --batch-size 10
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core import configure_logging


async def run_job(job: str, batch_size=None):
    """Run ``job`` once. A batch-level failure propagates."""
    from agents import extraction_agent, summary_agent, snapshot_agent, proactive_agent
    from memory.database_async import db

    try:
        if job == "extract":
            return await extraction_agent.run_extraction_batch(batch_size=batch_size)
        if job == "summarize":
            return await summary_agent.run_summarization_batch(batch_size=batch_size)
        if job == "snapshot":
            return await snapshot_agent.run_snapshot_batch(batch_size=batch_size)
        return await proactive_agent.run_proactive_batch(max_users=batch_size)
    finally:
        await db.dispose()


def main():
    parser = argparse.ArgumentParser(description="Run a memory batch job")
    parser.add_argument("job", choices=["extract", "summarize", "snapshot", "proactive"])
    parser.add_argument("--batch-size", type=int, default=None, help="Override the configured batch size")
    args = parser.parse_args()

    configure_logging()
    try:
        stats = asyncio.run(run_job(args.job, batch_size=args.batch_size))
    except Exception as e:
        print(f"Job failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(stats.model_dump_json(indent=2))
    sys.exit(1 if stats.errors else 0)


if __name__ == "__main__":
    main()
