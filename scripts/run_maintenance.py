#!/usr/bin/env python3
"""
🧹 RUN MAINTENANCE
==================
Periodic housekeeping for agents and lead scores.

WHAT IT DOES:
1. Marks agent assignments past their expiration as expired
2. Brings queued agents back where the active agent is gone or quiet
3. Rescores recently engaged contacts whose score is stale

USAGE:
    python scripts/run_maintenance.py

    # With options:
    python scripts/run_maintenance.py --skip-resume --force-scores --limit 2000
"""

import sys
from pathlib import Path
import argparse
from datetime import datetime

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from loguru import logger


def setup_logging(verbose: bool = False):
    """Configure logging."""
    logger.remove()

    level = "DEBUG" if verbose else "INFO"

    # Console output
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level=level
    )

    # File output
    log_dir = PROJECT_ROOT / "logs"
    log_dir.mkdir(exist_ok=True)

    log_file = log_dir / f"maintenance_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"
    logger.add(log_file, level="DEBUG")

    return log_file


def validate_environment():
    """Check that required environment variables are set."""
    from config.settings import settings

    validation = settings.validate()

    if not validation["database_configured"]:
        logger.error("❌ Supabase not configured!")
        logger.info("   Set SUPABASE_URL and SUPABASE_KEY in .env")
        return False

    if not validation["gemini_configured"]:
        logger.warning("⚠️ Gemini API not configured - neutral intent, template messages")

    if not validation["lifetimes_valid"]:
        logger.error("❌ Agent lifetime table has invalid entries!")
        return False

    logger.info("✅ Environment validated")
    return True


def sweep_agents():
    """Expire assignments that ran out of time."""
    from orchestration.agent_orchestrator import AgentOrchestrator

    logger.info("\n" + "=" * 50)
    logger.info("⌛ [1/3] EXPIRING AGENTS")
    logger.info("=" * 50)

    return AgentOrchestrator().sweep_expired()


def resume_queues():
    """Resume queued agents and draft their resume messages."""
    from orchestration.agent_orchestrator import AgentOrchestrator
    from orchestration.message_generator import MessageGenerator

    logger.info("\n" + "=" * 50)
    logger.info("▶️ [2/3] RESUMING QUEUED AGENTS")
    logger.info("=" * 50)

    return AgentOrchestrator().resume_queued_agents(generator=MessageGenerator())


def refresh_scores(limit: int, force: bool):
    """Rescore stale contacts on the worker pool."""
    from orchestration.score_sync import ScoreSyncQueue

    logger.info("\n" + "=" * 50)
    logger.info("🎯 [3/3] REFRESHING LEAD SCORES")
    logger.info("=" * 50)

    with ScoreSyncQueue() as queue:
        queue.recalculate_stale(limit=limit, force=force)
        return queue.drain()


def print_summary(results: dict):
    """Print final summary."""
    logger.info("\n" + "=" * 60)
    logger.info("📊 MAINTENANCE COMPLETE")
    logger.info("=" * 60)

    if results.get("expired"):
        expired = results["expired"]
        logger.info(f"   • Agents expired: {expired['expired']} ({expired['contacts']} contacts)")

    if results.get("queues"):
        queues = results["queues"]
        logger.info(f"   • Queues processed: {queues['processed']}, resumed: {queues['resumed']}, failed: {queues['failed']}")

    if results.get("scores"):
        scores = results["scores"]
        logger.info(f"   • Contacts rescored: {scores['succeeded']}/{scores['processed']}")
        for error in scores["errors"][:5]:
            logger.info(f"     ❌ {error['contact_id']}: {error['error']}")

    logger.info("\n✅ Run complete!")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run agent and lead score maintenance"
    )
    parser.add_argument(
        "--skip-sweep",
        action="store_true",
        help="Don't expire assignments"
    )
    parser.add_argument(
        "--skip-resume",
        action="store_true",
        help="Don't resume queued agents"
    )
    parser.add_argument(
        "--skip-scores",
        action="store_true",
        help="Don't refresh lead scores"
    )
    parser.add_argument(
        "--force-scores",
        action="store_true",
        help="Rescore every contact, not just stale ones"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=500,
        help="Maximum contacts to rescore"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    log_file = setup_logging(args.verbose)
    logger.info(f"📝 Logging to: {log_file}")

    if not validate_environment():
        sys.exit(1)

    results = {}

    if not args.skip_sweep:
        results["expired"] = sweep_agents()

    if not args.skip_resume:
        results["queues"] = resume_queues()

    if not args.skip_scores:
        results["scores"] = refresh_scores(args.limit, args.force_scores)

    print_summary(results)


if __name__ == "__main__":
    main()
