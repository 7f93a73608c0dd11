#!/usr/bin/env python3
"""
📣 CAMPAIGN CONTROL
===================
Operator entry point for the campaign lifecycle.

USAGE:
    python scripts/activate_campaign.py activate <campaign_id>
    python scripts/activate_campaign.py pause <campaign_id>
    python scripts/activate_campaign.py resume <campaign_id>
    python scripts/activate_campaign.py stop <campaign_id>
    python scripts/activate_campaign.py retry <campaign_id>
"""

import sys
import json
from pathlib import Path
import argparse

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from loguru import logger


def setup_logging(verbose: bool = False):
    """Configure logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="DEBUG" if verbose else "INFO"
    )


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Activate, pause, resume, stop or retry a campaign")
    parser.add_argument(
        "action",
        choices=["activate", "pause", "resume", "stop", "retry"],
        help="What to do with the campaign"
    )
    parser.add_argument("campaign_id", help="Campaign UUID")
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )
    args = parser.parse_args()

    setup_logging(args.verbose)

    from config.settings import settings
    if not settings.database.is_configured:
        logger.error("❌ Supabase not configured! Set SUPABASE_URL and SUPABASE_KEY in .env")
        return 1

    from orchestration.exceptions import CampaignNotFoundError
    from pipelines.campaign_activation import CampaignActivationPipeline

    pipeline = CampaignActivationPipeline()
    actions = {
        "activate": pipeline.activate,
        "pause": pipeline.pause,
        "resume": pipeline.resume,
        "stop": pipeline.stop,
        "retry": pipeline.retry_failed,
    }

    try:
        result = actions[args.action](args.campaign_id)
    except CampaignNotFoundError as e:
        logger.error(f"❌ {e}")
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
