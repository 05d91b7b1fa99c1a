#!/usr/bin/env python3
"""Creative Studio assistant CLI."""

import argparse
import asyncio
import logging
import sys
import uuid
from config.settings import Settings
from schemas.context import Capability, Tier
from orchestrator import StudioOrchestrator


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Creative Studio - AI chat and media creation assistant"
    )
    parser.add_argument(
        "--message",
        "-m",
        type=str,
        required=True,
        help="User message to process"
    )
    parser.add_argument(
        "--thread",
        type=str,
        help="Conversation thread ID (default: new thread)"
    )
    parser.add_argument(
        "--user",
        type=str,
        default="cli-user",
        help="User ID for quota accounting (default: cli-user)"
    )
    parser.add_argument(
        "--tier",
        type=str,
        choices=[t.value for t in Tier],
        default=Tier.FREE.value,
        help="Subscription tier (default: free)"
    )
    parser.add_argument(
        "--mode",
        type=str,
        choices=[c.value for c in Capability],
        help="Force a capability instead of letting the assistant decide"
    )
    parser.add_argument(
        "--research",
        action="store_true",
        help="Enable web research mode for chat"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    settings = Settings(verbose=args.verbose)
    orchestrator = StudioOrchestrator(settings=settings)
    thread_id = args.thread or uuid.uuid4().hex

    try:
        result = asyncio.run(orchestrator.process_message(
            thread_id=thread_id,
            user_id=args.user,
            message=args.message,
            tier=Tier(args.tier),
            force_capability=Capability(args.mode) if args.mode else None,
            web_research=args.research
        ))
        print("\n" + "="*60)
        print(f"RESPONSE ({result.outcome.status.value})")
        print("="*60 + "\n")
        print(result.assistant_turn.content)
        if result.outcome.artifact and result.outcome.artifact.url:
            print(f"\nArtifact: {result.outcome.artifact.url}")
        print(f"\nThread: {thread_id}\n")
    except Exception as e:
        print(f"Error processing message: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
