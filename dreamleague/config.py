"""
Process configuration read from environment variables.
One Settings object per process; services receive it explicitly.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    football_api_key: str | None = None
    football_api_base_url: str = "https://v3.football.api-sports.io"
    football_league_id: int = 140
    football_season: int = 2025
    # Pacing between consecutive gateway calls
    request_delay_ms: int = 350
    cache_ttl_ms: int = 60_000
    rate_limit_retry_ms: int = 2_000
    request_timeout_s: int = 15
    bet_evaluation_delay_ms: int = 100
    betting_budget_reset: int = 250
    max_bet_amount: int = 50
    max_combi_selections: int = 3
    rating_bonus_enabled: bool = False
    cron_token: str | None = None
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    return Settings(
        football_api_key=os.environ.get("FOOTBALL_API_KEY") or os.environ.get("API_FOOTBALL_KEY"),
        football_api_base_url=os.environ.get("FOOTBALL_API_BASE_URL", "https://v3.football.api-sports.io"),
        football_league_id=_env_int("FOOTBALL_LEAGUE_ID", 140),
        football_season=_env_int("FOOTBALL_SEASON", 2025),
        request_delay_ms=_env_int("FOOTBALL_API_DELAY_MS", 350),
        cache_ttl_ms=_env_int("FOOTBALL_API_CACHE_TTL_MS", 60_000),
        rate_limit_retry_ms=_env_int("FOOTBALL_API_RETRY_DELAY_MS", 2_000),
        request_timeout_s=_env_int("FOOTBALL_API_TIMEOUT_S", 15),
        bet_evaluation_delay_ms=_env_int("BET_EVALUATION_DELAY_MS", 100),
        betting_budget_reset=_env_int("BETTING_BUDGET_RESET", 250),
        max_bet_amount=_env_int("MAX_BET_AMOUNT", 50),
        max_combi_selections=_env_int("MAX_COMBI_SELECTIONS", 3),
        rating_bonus_enabled=_env_bool("RATING_BONUS_ENABLED", False),
        cron_token=os.environ.get("CRON_TOKEN") or None,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()


def configure_logging(level: str | None = None) -> None:
    """Root logging setup for the API process and scripts."""
    logging.basicConfig(
        level=getattr(logging, (level or get_settings().log_level), logging.INFO),
        format=LOG_FORMAT,
    )
