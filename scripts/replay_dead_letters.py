#!/usr/bin/env python3
"""
Inspect and replay dead-lettered push jobs.

Usage:
    python scripts/replay_dead_letters.py list
    python scripts/replay_dead_letters.py list --limit 10
    python scripts/replay_dead_letters.py replay <job_id> [<job_id> ...]
    python scripts/replay_dead_letters.py replay --all

Environment Variables:
    REDIS_URL: Redis connection URL
    PUSH_QUEUE_NAME: Queue name (default: push-queue)
"""

import argparse
import asyncio
import os
import sys
from os.path import abspath, dirname

import dotenv
import redis.asyncio as redis

sys.path.insert(0, dirname(dirname(abspath(__file__))))

from app.core.exceptions import InfraError  # noqa: E402
from app.services.push_queue import RedisPushQueue  # noqa: E402

dotenv.load_dotenv()


def build_client() -> redis.Redis:
    """Redis client over REDIS_URL, without loading the full service settings."""
    redis_url = os.getenv("REDIS_URL")
    if not redis_url:
        print("Error: REDIS_URL environment variable not set", file=sys.stderr)
        sys.exit(1)

    return redis.from_url(redis_url, decode_responses=True)


async def list_dead_letters(queue: RedisPushQueue, limit: int) -> None:
    letters = await queue.dead_letters(limit)
    if not letters:
        print("No dead letters.")
        return

    for letter in letters:
        queued = letter.queued
        print(
            f"{queued.job_id}  user={queued.job.user_id}  attempts={queued.attempt}  "
            f"at={letter.dead_lettered_at.isoformat()}"
        )
        print(f"   title: {queued.job.payload.title}")
        print(f"   error: {letter.error}")


async def replay(queue: RedisPushQueue, job_ids: list[str]) -> int:
    """Replay each job id; returns how many were not found."""
    missing = 0
    for job_id in job_ids:
        replayed = await queue.replay_dead_letter(job_id)
        if replayed is None:
            print(f"✗ {job_id}: no dead letter with this id", file=sys.stderr)
            missing += 1
        else:
            print(f"✓ {job_id} re-enqueued as {replayed.job_id}")
    return missing


async def run(args: argparse.Namespace) -> int:
    client = build_client()
    queue = RedisPushQueue(client, name=os.getenv("PUSH_QUEUE_NAME", "push-queue"))
    try:
        if args.command == "list":
            await list_dead_letters(queue, args.limit)
            return 0
        job_ids = args.job_ids
        if args.all:
            job_ids = [letter.queued.job_id for letter in await queue.dead_letters(args.limit)]
        if not job_ids:
            print("Nothing to replay.")
            return 0
        return 1 if await replay(queue, job_ids) else 0
    except InfraError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    finally:
        await client.aclose()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Inspect and replay dead-lettered push jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the newest 20 dead letters
  python replay_dead_letters.py list --limit 20

  # Replay two jobs as fresh first attempts
  python replay_dead_letters.py replay 3f2a... 9b1c...

  # Replay every dead letter
  python replay_dead_letters.py replay --all
        """,
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List dead letters, newest first")
    list_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of dead letters to show (default: 50)",
    )

    replay_parser = subparsers.add_parser("replay", help="Re-enqueue dead letters by job id")
    replay_parser.add_argument("job_ids", nargs="*", help="Job IDs to replay")
    replay_parser.add_argument("--all", action="store_true", help="Replay every dead letter")
    replay_parser.add_argument(
        "--limit",
        type=int,
        default=1000,
        help="Maximum number of dead letters replayed with --all (default: 1000)",
    )

    args = parser.parse_args()
    if args.command == "replay" and not (args.job_ids or args.all):
        parser.error("replay needs job ids or --all")
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
