"""
⚙️ LEADFLOW ENGINE SETTINGS
===========================
Central configuration for the scoring engine, the agent orchestrator
and the campaign activation pipeline.
Loads values from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file from project root
PROJECT_ROOT = Path(__file__).parent.parent
ENV_FILE = PROJECT_ROOT / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)
else:
    # Try config directory
    load_dotenv(PROJECT_ROOT / "config" / ".env")


class DatabaseSettings(BaseSettings):
    """Supabase database configuration."""
    supabase_url: str = Field(default="")
    supabase_key: str = Field(default="")

    @property
    def is_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


class APISettings(BaseSettings):
    """API keys for external services."""
    gemini_api_key: str = Field(default="")


class AISettings(BaseSettings):
    """AI model configuration."""
    # Flash handles intent classification (high volume, JSON output)
    gemini_flash_model: str = Field(default="gemini-2.5-flash-lite")
    # Pro drafts outbound agent messages
    gemini_pro_model: str = Field(default="gemini-2.5-flash")


class ScoringSettings(BaseSettings):
    """Lead scoring configuration."""
    model_config = SettingsConfigDict(env_prefix="SCORING_")

    message_history_limit: int = Field(default=10)
    intent_timeout_seconds: float = Field(default=15.0)
    sync_workers: int = Field(default=4)
    # Batch recalculation only touches recently engaged, stale contacts
    active_window_days: int = Field(default=7)
    refresh_after_minutes: int = Field(default=30)


class AgentSettings(BaseSettings):
    """Agent assignment configuration."""
    model_config = SettingsConfigDict(env_prefix="AGENT_")

    help_mode_hours: int = Field(default=4)
    default_lifetime_days: int = Field(default=90)
    queue_stale_hours: int = Field(default=48)
    lock_timeout_seconds: float = Field(default=10.0)


class CampaignSettings(BaseSettings):
    """Campaign activation configuration."""
    model_config = SettingsConfigDict(env_prefix="CAMPAIGN_")

    generation_timeout_seconds: float = Field(default=30.0)
    default_channel: str = Field(default="sms")
    segment_limit: int = Field(default=10000)


class Settings:
    """
    Master settings class that combines all configuration.

    Usage:
        from config.settings import settings

        # Access database settings
        url = settings.database.supabase_url

        # Access agent settings
        hours = settings.agents.help_mode_hours
    """

    def __init__(self):
        self.database = DatabaseSettings()
        self.api = APISettings()
        self.ai = AISettings()
        self.scoring = ScoringSettings()
        self.agents = AgentSettings()
        self.campaigns = CampaignSettings()
        self.project_root = PROJECT_ROOT

    def validate(self) -> dict:
        """
        Validate all settings and return status.
        Returns dict with validation results.
        """
        results = {
            "database_configured": self.database.is_configured,
            "gemini_configured": bool(self.api.gemini_api_key),
            "channel_valid": self.campaigns.default_channel in ("sms", "email"),
            "lifetimes_valid": all(
                days is INDEFINITE or days > 0
                for days in AGENT_LIFETIME_DAYS.values()
            ),
        }
        results["all_valid"] = all([
            results["database_configured"],
            results["channel_valid"],
            results["lifetimes_valid"],
        ])
        return results

    def print_status(self):
        """Print configuration status to console."""
        validation = self.validate()

        print("\n" + "=" * 50)
        print("⚙️  LEADFLOW ENGINE CONFIGURATION STATUS")
        print("=" * 50)

        print("\n📡 API Keys:")
        print(f"  • Supabase: {'✅ Configured' if validation['database_configured'] else '❌ Missing'}")
        print(f"  • Gemini:   {'✅ Configured' if validation['gemini_configured'] else '⚠️  Optional (neutral intent, template messages)'}")

        print("\n🤖 Agents:")
        print(f"  • Help mode window: {self.agents.help_mode_hours}h")
        print(f"  • Agent types: {len(AGENT_LIFETIME_DAYS)} configured")

        print("\n📣 Campaigns:")
        print(f"  • Default channel: {self.campaigns.default_channel}")
        print(f"  • Generation timeout: {self.campaigns.generation_timeout_seconds}s")

        print("\n" + "=" * 50)
        if validation["all_valid"]:
            print("✅ All critical settings configured! Ready to run.")
        else:
            print("❌ Some settings are missing. Check your .env file.")
        print("=" * 50 + "\n")

        return validation


# ===========================================
# AGENT LIFETIMES
# ===========================================
# Days an assignment stays live after (re)activation.
# INDEFINITE marks agent types that never expire; it is not a number,
# so date arithmetic on it fails loudly instead of silently.

INDEFINITE = None

AGENT_LIFETIME_DAYS: Dict[str, Optional[int]] = {
    "customer_service": INDEFINITE,
    "sales_agent": 90,
    "lead_nurture": 90,
    "webinar": 30,
    "textbook": 90,
    "flashcards": 60,
    "algo_monthly": 90,
    "ccta": 90,
    "influencer_outreach": 90,
}


# ===========================================
# SCORING TABLES
# ===========================================

# Fixed scores for confident buying signals (skip the weighted formula)
INTENT_OVERRIDE_SCORES = {
    "immediate": 95,
    "strong": 92,
    "moderate": 87,
}

# Tag substring -> penalty points (matched case-insensitively)
NEGATIVE_TAG_POINTS = {
    "shitlist": 50,
    "cancelled": 20,
    "inactive": 10,
}

DISPUTE_PENALTY = 40


# Singleton instance - import this in other modules
settings = Settings()


if __name__ == "__main__":
    # Test configuration when run directly
    settings.print_status()
