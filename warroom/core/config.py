"""
Service configuration.

Values come from the process environment and from one env file, picked by
ENVIRONMENT:
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Production refuses to start when a secret it needs is missing:
- ESPN_SWID / ESPN_S2 must be set together (private ESPN leagues)
- OPERATOR_USERNAME or OPERATOR_USER_ID (team identification)
"""
import logging
import os
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings

# Get the project root directory (3 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Environment-driven settings for the War Room service."""

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env
    )

    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    # Application
    APP_NAME: str = "War Room Fantasy Aggregation API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8001

    # Elimination ledger storage
    DATABASE_URL: str = "sqlite:///./warroom.db"

    # Source A (Sleeper public API, also serves the weekly stat feed)
    SLEEPER_BASE_URL: str = "https://api.sleeper.app/v1"

    # Source B (ESPN fantasy); cookies only needed for private leagues
    ESPN_BASE_URL: str = "https://lm-api-reads.fantasy.espn.com/apis/v3/games/ffl/seasons"
    ESPN_SWID: str = ""
    ESPN_S2: str = ""

    CURRENT_SEASON: str = "2025"
    HTTP_TIMEOUT: float = 30.0

    # Live refresh cadence
    REFRESH_INTERVAL_SECONDS: int = 30
    DEBOUNCE_SECONDS: float = 0.5
    LEAGUE_CACHE_TTL: int = 300  # 5 minutes (league / bracket data)
    DISCOVERY_CACHE_TTL: int = 3600  # 1 hour (league-id discovery)
    PLAYER_DIRECTORY_TTL: int = 86400  # 24 hours (Sleeper /players/nfl)
    STATS_READY_TIMEOUT: float = 10.0

    # Operator identity (read-only input to the identity resolver)
    OPERATOR_USERNAME: str = ""
    OPERATOR_USER_ID: str = ""
    OPERATOR_ESPN_ID: str = ""
    OPERATOR_PERSONAL_TAG: str = "gp"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def espn_cookies(self) -> dict[str, str]:
        """Cookies for private ESPN leagues (empty when not configured)."""
        if self.ESPN_SWID and self.ESPN_S2:
            return {"SWID": self.ESPN_SWID, "espn_s2": self.ESPN_S2}
        return {}

    def validate_required_secrets(self) -> List[str]:
        """
        Names of secrets that are missing for the current environment.

        Returns:
            List of missing secret names (empty if all present)
        """
        missing = []

        # ESPN cookies travel together; half a pair is always a mistake
        if bool(self.ESPN_SWID) != bool(self.ESPN_S2):
            missing.append("ESPN_S2" if self.ESPN_SWID else "ESPN_SWID")

        if self.is_production() and not (self.OPERATOR_USERNAME or self.OPERATOR_USER_ID):
            missing.append("OPERATOR_USERNAME")

        return missing


def env_file_for(environment: str) -> Path:
    """The env file to read for ``environment`` (may not exist)."""
    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    default_env = PROJECT_ROOT / ".env"
    if default_env.exists():
        logger.info(f"Loading environment from .env (environment: {environment})")
    else:
        logger.debug(f"No environment file found for '{environment}' (checked .env.{environment}, .env)")
    return default_env


def load_settings(environment: Optional[str] = None) -> Settings:
    """
    Build Settings from the environment and the matching env file.

    Raises:
        ValueError: Production settings with missing secrets
    """
    environment = environment or os.getenv("ENVIRONMENT", "development")
    loaded = Settings(_env_file=str(env_file_for(environment)))

    missing = loaded.validate_required_secrets()
    if missing:
        logger.warning(f"Missing required secrets for {loaded.ENVIRONMENT}: {', '.join(missing)}")
        if loaded.is_production():
            raise ValueError(
                f"Cannot start in production with missing secrets: {', '.join(missing)}. "
                f"Please set these environment variables in .env.production"
            )
    return loaded


settings = load_settings()
