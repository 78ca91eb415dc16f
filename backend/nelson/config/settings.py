"""Application-wide configuration loaded from environment variables."""

import os

from dotenv import load_dotenv

load_dotenv()

# Redis (document store)
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")

# ── Cron / Service-to-service ────────────────────────────────────────────

# Empty means "not configured"; the cron endpoint answers 500 in that case.
CRON_SECRET: str = os.getenv("CRON_SECRET", "")

# Base URL for internal calls (cron -> generate-weekly-coaching)
APP_URL: str = os.getenv("NEXT_PUBLIC_APP_URL", "https://nelson.app").rstrip("/")
APP_REQUEST_TIMEOUT: float = float(os.getenv("APP_REQUEST_TIMEOUT", "120"))

# Minimum check-ins in the previous week before the cron generates coaching
CRON_MIN_WEEKLY_CHECKINS: int = int(os.getenv("CRON_MIN_WEEKLY_CHECKINS", "6"))

# ── Coaching generation ──────────────────────────────────────────────────

ANTHROPIC_API_KEY: str = os.getenv("ANTHROPIC_API_KEY", "")
COACHING_MODEL: str = os.getenv("COACHING_MODEL", "claude-sonnet-4-20250514")
COACHING_MAX_TOKENS: int = int(os.getenv("COACHING_MAX_TOKENS", "1000"))
COACHING_TEMPERATURE: float = float(os.getenv("COACHING_TEMPERATURE", "0.7"))
COACHING_MAX_ATTEMPTS: int = int(os.getenv("COACHING_MAX_ATTEMPTS", "3"))

# ── Weekly pattern thresholds ────────────────────────────────────────────

PATTERN_MIN_WEEK_CHECKINS: int = int(os.getenv("PATTERN_MIN_WEEK_CHECKINS", "4"))
PATTERN_MIN_LIFETIME_CHECKINS: int = int(os.getenv("PATTERN_MIN_LIFETIME_CHECKINS", "10"))
PATTERN_EXERCISE_DAYS_HIGH: int = int(os.getenv("PATTERN_EXERCISE_DAYS_HIGH", "5"))
PATTERN_MOMENTUM_FLAT_BELOW: float = float(os.getenv("PATTERN_MOMENTUM_FLAT_BELOW", "50"))
PATTERN_RECOVERY_LOW_BELOW: float = float(os.getenv("PATTERN_RECOVERY_LOW_BELOW", "60"))
PATTERN_RECOVERY_LOW_DAYS: int = int(os.getenv("PATTERN_RECOVERY_LOW_DAYS", "3"))
PATTERN_OTHER_BEHAVIORS_LOW_BELOW: float = float(os.getenv("PATTERN_OTHER_BEHAVIORS_LOW_BELOW", "60"))
PATTERN_VARIANCE_HIGH_ABOVE: float = float(os.getenv("PATTERN_VARIANCE_HIGH_ABOVE", "25"))
PATTERN_TREND_DELTA: float = float(os.getenv("PATTERN_TREND_DELTA", "5"))
PATTERN_LIFETIME_LOOKBACK_DAYS: int = int(os.getenv("PATTERN_LIFETIME_LOOKBACK_DAYS", "30"))

# ── Check-ins / habits ───────────────────────────────────────────────────

DEFAULT_USER_WEIGHT: int = int(os.getenv("DEFAULT_USER_WEIGHT", "170"))
DEFAULT_EXERCISE_TARGET_MINUTES: int = int(os.getenv("DEFAULT_EXERCISE_TARGET_MINUTES", "10"))

# ── Server Configuration ─────────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8000"))
