#!/usr/bin/env python3
"""
💾 DATABASE SETUP SCRIPT
========================
Prepares a Supabase project for the Leadflow engine.

WHAT IT DOES:
1. Connects to your Supabase project
2. Points you at database/schema.sql (run it in the SQL Editor)
3. Verifies every table the engine needs exists
4. Optionally seeds a few sample contacts and a draft campaign

USAGE:
    python scripts/setup_database.py
    python scripts/setup_database.py --print-schema --seed

PREREQUISITES:
    1. Create a Supabase project at https://supabase.com
    2. Set SUPABASE_URL and SUPABASE_KEY in your .env file
"""

import sys
from pathlib import Path
import argparse
from datetime import datetime, timedelta, timezone

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from loguru import logger

SCHEMA_FILE = PROJECT_ROOT / "database" / "schema.sql"

REQUIRED_TABLES = [
    "contacts",
    "messages",
    "ai_messages",
    "agent_conversations",
    "product_agents",
    "conversation_state",
    "ai_sales_campaigns",
    "ai_sales_campaign_contacts",
]


def setup_logging():
    """Configure logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )


def check_connection() -> bool:
    """Verify Supabase credentials and connectivity."""
    from config.settings import settings

    if not settings.database.is_configured:
        logger.error("❌ Supabase credentials not configured!")
        logger.info("")
        logger.info("📝 TO FIX:")
        logger.info("   1. Open your project in https://supabase.com")
        logger.info("   2. Go to Project Settings → API")
        logger.info("   3. Add to .env in the project root:")
        logger.info("      SUPABASE_URL=your-project-url")
        logger.info("      SUPABASE_KEY=your-service-role-key")
        return False

    from database.connection import db
    if db.client is None:
        logger.error("❌ Could not create the Supabase client")
        return False

    logger.info("✅ Supabase client ready")
    return True


def show_schema_instructions(print_schema: bool):
    """Supabase only runs DDL from the dashboard, so explain the manual step."""
    if not SCHEMA_FILE.exists():
        logger.error(f"Schema file not found: {SCHEMA_FILE}")
        return

    logger.info("⚠️  Manual step: run the schema in the Supabase SQL Editor")
    logger.info("   1. Dashboard → SQL Editor → New query")
    logger.info(f"   2. Paste the contents of {SCHEMA_FILE}")
    logger.info("   3. Click 'Run'")

    if print_schema:
        print("\n" + "=" * 60)
        print("SQL SCHEMA (copy this to Supabase SQL Editor)")
        print("=" * 60 + "\n")
        print(SCHEMA_FILE.read_text())
        print("=" * 60)


def verify_tables() -> bool:
    """Check that every required table answers a query."""
    from database.connection import db

    missing = []
    for table in REQUIRED_TABLES:
        try:
            db.client.table(table).select("id").limit(1).execute()
            logger.info(f"   ✅ {table}")
        except Exception as e:
            missing.append(table)
            logger.warning(f"   ❌ {table} ({e})")

    if missing:
        logger.warning(f"\n⚠️ {len(missing)} tables missing - run database/schema.sql first")
        return False

    logger.info(f"\n✅ All {len(REQUIRED_TABLES)} tables verified!")
    return True


def seed_sample_data() -> int:
    """Insert three sample contacts and a draft campaign targeting warm leads."""
    from database.connection import db

    now = datetime.now(timezone.utc)
    contacts = [
        {
            "full_name": "Avery Sample",
            "total_spent": 12000,
            "products_owned": ["textbook", "flashcards"],
            "last_engagement_date": now - timedelta(days=3),
        },
        {
            "full_name": "Jordan Sample",
            "total_spent": 450,
            "products_owned": ["textbook"],
            "webinar_attendance": [{"webinar": "intro", "attended_at": (now - timedelta(days=10)).isoformat()}],
            "last_engagement_date": now - timedelta(days=20),
        },
        {
            "full_name": "Riley Sample",
            "tags": ["inactive"],
            "last_contact_date": now - timedelta(days=200),
        },
    ]

    inserted = db.insert_many("contacts", contacts)
    db.insert("ai_sales_campaigns", {
        "name": "Sample: warm leads",
        "agent_type": "sales_agent",
        "channel": "sms",
        "audience_filter": [
            {"field": "total_spent", "operator": "greater_than", "value": "100"},
        ],
        "campaign_strategy": {"goal": "book a call"},
        "status": "draft",
    })

    logger.info(f"   Inserted {len(inserted)} sample contacts and 1 draft campaign")
    return len(inserted)


def print_next_steps():
    """Print next steps for the user."""
    logger.info("\n" + "=" * 60)
    logger.info("🎉 DATABASE SETUP COMPLETE")
    logger.info("=" * 60)
    logger.info("")
    logger.info("📋 NEXT STEPS:")
    logger.info("   1. Score contacts:       python run_scoring.py")
    logger.info("   2. Activate a campaign:  python scripts/activate_campaign.py activate <campaign_id>")
    logger.info("   3. Schedule upkeep:      python scripts/run_maintenance.py")
    logger.info("")


def main():
    """Main setup function."""
    parser = argparse.ArgumentParser(description="Prepare the Supabase database")
    parser.add_argument("--print-schema", action="store_true", help="Print the SQL schema")
    parser.add_argument("--seed", action="store_true", help="Insert sample data")
    args = parser.parse_args()

    setup_logging()

    logger.info("💾 LEADFLOW ENGINE DATABASE SETUP")
    logger.info("=" * 40)

    logger.info("\n[Step 1/4] Checking Supabase connection...")
    if not check_connection():
        sys.exit(1)

    logger.info("\n[Step 2/4] Database schema...")
    show_schema_instructions(args.print_schema)

    logger.info("\n[Step 3/4] Verifying tables...")
    tables_ok = verify_tables()

    if tables_ok and args.seed:
        logger.info("\n[Step 4/4] Sample data...")
        seed_sample_data()
    else:
        logger.info("\n[Step 4/4] Skipping sample data")

    print_next_steps()


if __name__ == "__main__":
    main()
