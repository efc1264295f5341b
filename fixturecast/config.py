"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class ConfigurationError(RuntimeError):
    """Raised when a run cannot start because required configuration is missing."""


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./fixturecast.db"

    # ═══════════════════════════════════════════════════════════════
    # Providers (empty credential = provider skipped)
    # ═══════════════════════════════════════════════════════════════

    # Goalserve (primary feed)
    GOALSERVE_TOKEN: str = ""
    GOALSERVE_BASE_URL: str = "https://www.goalserve.com/getfeed"

    # football-data.org v4
    FOOTBALL_DATA_API_KEY: str = ""
    FOOTBALL_DATA_BASE_URL: str = "https://api.football-data.org/v4"

    # API-Football (RapidAPI or API-Sports direct)
    RAPIDAPI_KEY: str = ""
    RAPIDAPI_HOST: str = "api-football-v1.p.rapidapi.com"

    # Fallback order, comma separated
    PROVIDER_PRIORITY: str = "goalserve,football_data,api_football"

    # Retry policy for provider HTTP calls
    PROVIDER_MAX_RETRIES: int = 3  # Total attempts per request
    PROVIDER_TIMEOUT_SECONDS: float = 20.0  # Per-request timeout
    PROVIDER_BACKOFF_SECONDS: float = 2.0  # Base delay, doubled per attempt
    PROVIDER_BACKOFF_MODE: str = "exponential"  # "exponential" | "linear"

    # ═══════════════════════════════════════════════════════════════
    # Ingestion windows
    # ═══════════════════════════════════════════════════════════════
    RETENTION_WINDOW_HOURS: int = 168  # Forward-looking "upcoming" window (7 days)
    RESULTS_LOOKBACK_HOURS: int = 48  # Backward window for results sync
    HISTORY_LOOKBACK_DAYS: int = 30  # Span requested from history feeds

    # ═══════════════════════════════════════════════════════════════
    # Forecast oracle (Gemini)
    # ═══════════════════════════════════════════════════════════════
    GEMINI_API_KEY: str = ""
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/models"
    GEMINI_MAX_TOKENS: int = 2048
    GEMINI_TEMPERATURE: float = 0.3
    GEMINI_TOP_P: float = 0.9
    GEMINI_TIMEOUT_SECONDS: float = 60.0

    # Model fallback order, comma separated
    FORECAST_MODELS: str = "gemini-2.5-flash,gemini-2.5-pro,gemini-2.0-flash,gemini-1.5-flash"
    FORECAST_RETRY_ATTEMPTS: int = 2  # Attempts per model
    FORECAST_BACKOFF_SECONDS: float = 0.5
    FORECAST_MIN_CONFIDENCE: float = 90.0  # Forecasts below this are discarded
    FORECAST_H2H_LIMIT: int = 10
    FORECAST_VERSION: str = "ai-2x"
    FORECAST_SUMMARY_ENABLED: bool = False

    # Trigger surface
    JOB_DEADLINE_SECONDS: float = 600.0  # Upper bound for a whole run

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def provider_priority(self) -> list[str]:
        return [p.strip() for p in self.PROVIDER_PRIORITY.split(",") if p.strip()]

    @property
    def forecast_models(self) -> list[str]:
        return [m.strip() for m in self.FORECAST_MODELS.split(",") if m.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
