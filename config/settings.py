"""
Application settings and configuration

This file contains all the settings for the review sync pipeline.
Think of it like a control panel where you can adjust how the system works.

Most settings can be changed by creating a .env file in the project root.
If a setting isn't in .env, it uses the default value shown here.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file (if it exists)
# This lets you configure the app without changing code
load_dotenv()


class Settings:
    """
    Application configuration settings

    This class holds all the configuration for the entire application.
    You can change these values by setting environment variables in a .env file.
    """

    # ============================================================
    # Database Settings
    # ============================================================
    # Reviews, businesses and the last-sync timestamps all live here.
    # SQLite for local use, PostgreSQL (postgresql+asyncpg://...) for production
    DATA_DIR = os.getenv("DATA_DIR", "data")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"sqlite+aiosqlite:///{os.path.join(DATA_DIR, 'reviews.db')}"
    )

    # ============================================================
    # Review Source Credentials
    # ============================================================
    # API keys for each review platform. A missing key only breaks
    # the sync for that one platform, the others keep working.
    GOOGLE_PLACES_API_KEY = os.getenv("GOOGLE_PLACES_API_KEY", "")
    YELP_API_KEY = os.getenv("YELP_API_KEY", "")
    REDDIT_CLIENT_ID = os.getenv("REDDIT_CLIENT_ID", "")
    REDDIT_CLIENT_SECRET = os.getenv("REDDIT_CLIENT_SECRET", "")
    REDDIT_USER_AGENT = os.getenv("REDDIT_USER_AGENT", "review-sync/1.0")

    # ============================================================
    # Review Source Behaviour
    # ============================================================
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "20"))
    GOOGLE_PAGE_SIZE = int(os.getenv("GOOGLE_PAGE_SIZE", "50"))  # Reviews per search page
    GOOGLE_MAX_PAGES = int(os.getenv("GOOGLE_MAX_PAGES", "20"))  # Safety cap on pagination
    GOOGLE_PAGE_DELAY = float(os.getenv("GOOGLE_PAGE_DELAY", "0.8"))  # Seconds between pages
    REDDIT_DEFAULT_SUBREDDITS = [
        s.strip() for s in os.getenv("REDDIT_DEFAULT_SUBREDDITS", "reviews,AskReddit").split(",") if s.strip()
    ]
    REDDIT_MAX_RESULTS = int(os.getenv("REDDIT_MAX_RESULTS", "25"))  # Mentions per sync
    REDDIT_MAX_PAGES = int(os.getenv("REDDIT_MAX_PAGES", "3"))  # Search pages per subreddit
    TRIPADVISOR_MAX_HTML_CHARS = int(os.getenv("TRIPADVISOR_MAX_HTML_CHARS", "50000"))  # Page text sent to the LLM

    # ============================================================
    # Sync Cooldowns (per platform, in seconds)
    # ============================================================
    # Minimum time between two successful syncs of the same platform
    # for the same business. Yelp only allows a daily refresh.
    # Set to 0 to disable the cooldown for a platform.
    GOOGLE_SYNC_COOLDOWN_SECONDS = int(os.getenv("GOOGLE_SYNC_COOLDOWN_SECONDS", "300"))
    YELP_SYNC_COOLDOWN_SECONDS = int(os.getenv("YELP_SYNC_COOLDOWN_SECONDS", str(24 * 60 * 60)))
    REDDIT_SYNC_COOLDOWN_SECONDS = int(os.getenv("REDDIT_SYNC_COOLDOWN_SECONDS", "300"))
    TRIPADVISOR_SYNC_COOLDOWN_SECONDS = int(os.getenv("TRIPADVISOR_SYNC_COOLDOWN_SECONDS", "3600"))

    # ============================================================
    # Gemini API Settings
    # ============================================================
    # Google's Gemini AI is used to:
    # - Analyze sentiment, keywords and categories of each review
    # - Extract reviews from TripAdvisor pages
    GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")  # Your Google API key (required for enrichment!)
    GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-1.5-flash")  # Which AI model to use

    # ============================================================
    # Enrichment Batching
    # ============================================================
    # Reviews are analyzed a few at a time (all reviews in a batch in parallel),
    # with a pause between batches so we don't hit the AI rate limits.
    ENRICHMENT_BATCH_SIZE = int(os.getenv("ENRICHMENT_BATCH_SIZE", "5"))
    ENRICHMENT_BATCH_DELAY = float(os.getenv("ENRICHMENT_BATCH_DELAY", "1.0"))
    ENRICH_ON_SYNC = os.getenv("ENRICH_ON_SYNC", "true").lower() == "true"
    ANALYZE_MISSING_LIMIT = int(os.getenv("ANALYZE_MISSING_LIMIT", "50"))  # Reviews per sweep

    # ============================================================
    # Scheduler Settings
    # ============================================================
    # How often every registered business is synced automatically
    SYNC_INTERVAL_HOURS = int(os.getenv("SYNC_INTERVAL_HOURS", "6"))

    # ============================================================
    # Logging Settings
    # ============================================================
    # Options: DEBUG (very detailed), INFO (normal), WARNING (only problems), ERROR (only errors)
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "logs/app.log")  # Where to save log files

    def get_sync_cooldown(self, platform: str) -> int:
        """
        Get the sync cooldown for a platform

        Args:
            platform: Platform slug ("google", "yelp", "reddit", "tripadvisor")

        Returns:
            Cooldown in seconds (0 means no cooldown)
        """
        cooldowns = {
            "google": self.GOOGLE_SYNC_COOLDOWN_SECONDS,
            "yelp": self.YELP_SYNC_COOLDOWN_SECONDS,
            "reddit": self.REDDIT_SYNC_COOLDOWN_SECONDS,
            "tripadvisor": self.TRIPADVISOR_SYNC_COOLDOWN_SECONDS,
        }
        return cooldowns.get(platform, 0)

    @staticmethod
    def ensure_directories():
        """
        Create necessary directories if they don't exist

        This makes sure the data folder (for the SQLite file) and the
        logs folder exist before anything tries to write to them.
        """
        os.makedirs(Settings.DATA_DIR, exist_ok=True)
        os.makedirs(os.path.dirname(Settings.LOG_FILE) if os.path.dirname(Settings.LOG_FILE) else "logs", exist_ok=True)


# Global settings instance
settings = Settings()
