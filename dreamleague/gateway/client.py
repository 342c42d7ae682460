"""
API-Football v3 client.
One instance per process (built in the API layer and injected into services).
Paces consecutive requests, caches GET responses for a short TTL, treats 403 as
fatal and retries a 429 once after a fixed wait.
"""
from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable

import requests
from cachetools import TTLCache

from dreamleague.config import Settings
from dreamleague.errors import GatewayError, GatewayForbiddenError
from dreamleague.gateway.fixtures import FixtureResult, FixtureStatistics

logger = logging.getLogger(__name__)


def round_name(jornada: int) -> str:
    return f"Regular Season - {jornada}"


class FootballApiClient:
    def __init__(
        self,
        settings: Settings,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if not settings.football_api_key:
            raise GatewayError("Missing football API key. Set FOOTBALL_API_KEY.", code="FOOTBALL_API_NOT_CONFIGURED")
        self.settings = settings
        self.base_url = settings.football_api_base_url.rstrip("/")
        self.league_id = settings.football_league_id
        self.season = settings.football_season
        self._session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock
        ttl_s = settings.cache_ttl_ms / 1000.0
        # ttl <= 0 disables response caching
        self._cache: TTLCache | None = TTLCache(maxsize=2048, ttl=ttl_s, timer=clock) if ttl_s > 0 else None
        self._cache_lock = threading.Lock()
        self._delay_s = settings.request_delay_ms / 1000.0
        self._retry_s = settings.rate_limit_retry_ms / 1000.0
        self._last_request_at: float | None = None
        self._pace_lock = threading.Lock()

    # ---------- transport ----------

    def _pace(self) -> None:
        """Keep at least request_delay between two outgoing calls."""
        with self._pace_lock:
            if self._last_request_at is not None and self._delay_s > 0:
                wait = self._delay_s - (self._clock() - self._last_request_at)
                if wait > 0:
                    self._sleep(wait)
            self._last_request_at = self._clock()

    def _request(self, url: str, params: dict[str, Any]) -> requests.Response:
        self._pace()
        try:
            return self._session.get(
                url,
                params=params,
                headers={"x-apisports-key": self.settings.football_api_key},
                timeout=self.settings.request_timeout_s,
            )
        except requests.RequestException as e:
            raise GatewayError(f"Football API request failed: {e}") from e

    def _get(self, path: str, params: dict[str, Any], use_cache: bool = True) -> dict[str, Any]:
        key = (path, tuple(sorted(params.items())))
        use_cache = use_cache and self._cache is not None
        if use_cache:
            with self._cache_lock:
                cached = self._cache.get(key)
            if cached is not None:
                return cached

        url = f"{self.base_url}/{path.lstrip('/')}"
        resp = self._request(url, params)
        if resp.status_code == 429:
            logger.warning("Football API rate limited on %s %s, retrying in %.1fs", path, params, self._retry_s)
            self._sleep(self._retry_s)
            resp = self._request(url, params)
        if resp.status_code == 403:
            raise GatewayForbiddenError("Football API rejected the API key (403)")
        if resp.status_code == 429:
            raise GatewayError("Football API rate limit persisted after retry", code="FOOTBALL_API_RATE_LIMITED")
        try:
            resp.raise_for_status()
            payload = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise GatewayError(f"Football API error on {path}: {e}") from e
        if not isinstance(payload, dict) or "response" not in payload:
            raise GatewayError(f"Unexpected Football API response shape from {path}")
        errors = payload.get("errors")
        if errors and isinstance(errors, dict):
            logger.warning("Football API reported errors for %s %s: %s", path, params, errors)
        if use_cache:
            with self._cache_lock:
                self._cache[key] = payload
        return payload

    # ---------- fixtures ----------

    def get_fixture(self, fixture_id: int) -> FixtureResult | None:
        rows = self._get("fixtures", {"id": fixture_id}).get("response") or []
        if not rows:
            return None
        return FixtureResult.from_api(rows[0])

    def get_fixture_statistics(self, fixture_id: int) -> FixtureStatistics | None:
        rows = self._get("fixtures/statistics", {"fixture": fixture_id}).get("response") or []
        if not rows:
            return None
        return FixtureStatistics.from_api(fixture_id, rows)

    def get_round_fixtures(self, jornada: int, season: int | None = None) -> list[FixtureResult]:
        payload = self._get(
            "fixtures",
            {"league": self.league_id, "season": season or self.season, "round": round_name(jornada)},
        )
        return [FixtureResult.from_api(row) for row in payload.get("response") or []]

    def get_fixture_players(self, fixture_id: int) -> list[dict[str, Any]]:
        """Per-team blocks: [{team: {...}, players: [{player: {...}, statistics: [...]}]}]."""
        return self._get("fixtures/players", {"fixture": fixture_id}).get("response") or []

    def get_fixture_events(self, fixture_id: int) -> list[dict[str, Any]]:
        return self._get("fixtures/events", {"fixture": fixture_id}).get("response") or []

    # ---------- players ----------

    def get_player_season(self, player_id: int, season: int | None = None) -> list[dict[str, Any]]:
        return self._get("players", {"id": player_id, "season": season or self.season}).get("response") or []

    def search_players(self, name: str, season: int | None = None) -> list[dict[str, Any]]:
        payload = self._get(
            "players",
            {"search": name, "league": self.league_id, "season": season or self.season},
        )
        return payload.get("response") or []

    def clear_cache(self) -> None:
        if self._cache is not None:
            with self._cache_lock:
                self._cache.clear()

    def close(self) -> None:
        self._session.close()
