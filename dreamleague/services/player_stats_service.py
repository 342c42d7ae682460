"""
Player stats per jornada: read-through cache over the football API.
A stored (player, jornada, season) row is served as-is unless a refresh is forced.
"""
from __future__ import annotations

import logging
import sqlite3
import unicodedata
from typing import Any

from dreamleague.config import Settings, get_settings
from dreamleague.errors import AppError, GatewayError, GatewayForbiddenError, NotFoundError
from dreamleague.gateway.fixtures import FixtureResult
from dreamleague.models import Player, PlayerStats
from dreamleague.persistence.repositories import PlayerRepository, PlayerStatsRepository
from dreamleague.roles import Role, normalize_role
from dreamleague.scoring import PlayerMatchStats, calculate_points, stats_from_api_block

logger = logging.getLogger(__name__)

FULL_MATCH_MINUTES = 90


def normalize_name(name: str | None) -> str:
    """Accent-, dot- and case-insensitive form used to match API player names."""
    decomposed = unicodedata.normalize("NFD", name or "")
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return " ".join(stripped.replace(".", " ").lower().split())


def names_match(a: str | None, b: str | None) -> bool:
    """Exact normalized match, or same surname with matching first initial ("L Messi")."""
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    ta, tb = na.split(), nb.split()
    return ta[-1] == tb[-1] and ta[0][0] == tb[0][0]


def _elapsed(event: dict[str, Any]) -> int:
    # Stoppage time ("45+2") reports elapsed=45, extra=2; extra is ignored
    return int((event.get("time") or {}).get("elapsed") or 0)


def _is_subst(event: dict[str, Any]) -> bool:
    return (event.get("type") or "").strip().lower() == "subst"


def _refers_to(person: dict[str, Any] | None, player: Player) -> bool:
    if not person:
        return False
    if person.get("id") is not None:
        return person.get("id") == player.id
    return names_match(person.get("name"), player.name)


def normalize_minutes(
    raw_minutes: int,
    was_substitute: bool,
    events: list[dict[str, Any]],
    player: Player,
) -> int:
    """
    Minutes on the pitch with stoppage time removed, derived from substitution events.
    In a subst event "assist" is the player coming on and "player" the one going off.
    """
    if raw_minutes <= 0:
        return 0
    entry = 0
    exit_minute = FULL_MATCH_MINUTES
    came_on = next((e for e in events if _is_subst(e) and _refers_to(e.get("assist"), player)), None)
    if came_on is not None:
        entry = _elapsed(came_on)
    elif was_substitute:
        entry = max(FULL_MATCH_MINUTES - raw_minutes, 0)
    went_off = next((e for e in events if _is_subst(e) and _refers_to(e.get("player"), player)), None)
    if went_off is not None:
        exit_minute = _elapsed(went_off)

    minutes = min(exit_minute - entry, FULL_MATCH_MINUTES)
    if minutes <= 0:
        return 1
    if minutes > raw_minutes:
        return min(raw_minutes, FULL_MATCH_MINUTES)
    return minutes


class PlayerStatsService:
    """
    get_or_compute is the single entry point for a player's jornada points.
    The gateway is injected (FootballApiClient in production, a fake in tests).
    """

    def __init__(self, gateway: Any, settings: Settings | None = None) -> None:
        self._gateway = gateway
        self._settings = settings or get_settings()
        self._player_repo = PlayerRepository()
        self._stats_repo = PlayerStatsRepository()

    def get_or_compute(
        self,
        conn: sqlite3.Connection,
        player_id: int,
        jornada: int,
        season: int | None = None,
        force_refresh: bool = False,
    ) -> PlayerStats:
        season = season or self._settings.football_season
        existing = self._stats_repo.get(conn, player_id, jornada, season)
        if existing is not None and not force_refresh:
            return existing

        player = self._player_repo.get(conn, player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        role = normalize_role(player.position)

        fixtures = self._gateway.get_round_fixtures(jornada, season)
        located = self._locate(player, role, fixtures, season)
        if located is None:
            if force_refresh and existing is not None and existing.total_points != 0:
                logger.warning(
                    "Player %s not found in jornada %s fixtures on refresh; keeping stored %s points",
                    player_id, jornada, existing.total_points,
                )
                return existing
            logger.info("Player %s did not play jornada %s (season %s)", player_id, jornada, season)
            record = self._stats_repo.upsert(
                conn, player_id, jornada, season,
                fixture_id=0, team_id=player.team_id, total_points=0,
                points_breakdown=[], stats=PlayerMatchStats().to_dict(),
            )
            self._player_repo.update_last_jornada_points(conn, player_id, 0, jornada)
            return record

        fixture, team_id, block = located
        stats = stats_from_api_block(block, team_goals_conceded=fixture.goals_conceded_by(team_id))
        was_substitute = bool((block.get("games") or {}).get("substitute"))
        stats.minutes = self._minutes_from_events(fixture.fixture_id, player, stats.minutes, was_substitute)

        result = calculate_points(stats, role, include_rating_bonus=self._settings.rating_bonus_enabled)
        record = self._stats_repo.upsert(
            conn, player_id, jornada, season,
            fixture_id=fixture.fixture_id, team_id=team_id, total_points=result.total,
            points_breakdown=result.breakdown, stats=stats.to_dict(),
        )
        self._player_repo.update_last_jornada_points(conn, player_id, result.total, jornada)
        return record

    def get_multiple_jornadas(
        self,
        conn: sqlite3.Connection,
        player_id: int,
        jornadas: list[int],
        season: int | None = None,
        force_refresh: bool = False,
    ) -> list[PlayerStats]:
        return [self.get_or_compute(conn, player_id, j, season, force_refresh) for j in jornadas]

    def update_all_players_for_jornada(
        self,
        conn: sqlite3.Connection,
        jornada: int,
        season: int | None = None,
    ) -> dict[str, Any]:
        """
        Force-refresh every catalogued player for one jornada.
        Per-player failures are counted and skipped; a rejected API key aborts.
        """
        players = self._player_repo.list_all(conn)
        success = 0
        failed: list[dict[str, Any]] = []
        for player in players:
            try:
                self.get_or_compute(conn, player.id, jornada, season, force_refresh=True)
                success += 1
            except GatewayForbiddenError:
                raise
            except AppError as e:
                logger.warning("Stats refresh failed for player %s jornada %s: %s", player.id, jornada, e.message)
                failed.append({"player_id": player.id, "code": e.code, "message": e.message})
        logger.info("Jornada %s stats refresh: %s ok, %s errors", jornada, success, len(failed))
        return {
            "jornada": jornada,
            "total": len(players),
            "success": success,
            "errors": len(failed),
            "failed": failed,
        }

    # ---------- lookup ----------

    def _team_ids(self, player: Player, season: int) -> list[int]:
        ids: list[int] = []

        def _collect(rows: list[dict[str, Any]], by_name: bool) -> None:
            for row in rows:
                info = row.get("player") or {}
                if by_name:
                    if info.get("id") != player.id and not names_match(info.get("name"), player.name):
                        continue
                for stat in row.get("statistics") or []:
                    tid = (stat.get("team") or {}).get("id")
                    if tid is not None and tid not in ids:
                        ids.append(tid)

        _collect(self._gateway.get_player_season(player.id, season), by_name=False)
        if not ids:
            last_name = normalize_name(player.name).split()[-1] if player.name.strip() else player.name
            _collect(self._gateway.search_players(last_name, season), by_name=True)
        if player.team_id is not None and player.team_id not in ids:
            ids.append(player.team_id)
        return ids

    def _locate(
        self,
        player: Player,
        role: Role,
        fixtures: list[FixtureResult],
        season: int,
    ) -> tuple[FixtureResult, int, dict[str, Any]] | None:
        for team_id in self._team_ids(player, season):
            fixture = next((f for f in fixtures if f.involves(team_id)), None)
            if fixture is None:
                continue
            teams = self._gateway.get_fixture_players(fixture.fixture_id)
            entry = find_player_entry(teams, team_id, player, role)
            if entry is not None:
                found_team_id, block = entry
                return fixture, found_team_id, block
        return None

    def _minutes_from_events(self, fixture_id: int, player: Player, raw: int, was_substitute: bool) -> int:
        if raw <= 0:
            return 0
        try:
            events = self._gateway.get_fixture_events(fixture_id)
        except GatewayForbiddenError:
            raise
        except GatewayError as e:
            logger.warning("Events unavailable for fixture %s (%s); using raw minutes", fixture_id, e.message)
            return max(1, min(raw, FULL_MATCH_MINUTES))
        return normalize_minutes(raw, was_substitute, events, player)


def find_player_entry(
    teams: list[dict[str, Any]],
    team_id: int,
    player: Player,
    role: Role,
) -> tuple[int, dict[str, Any]] | None:
    """
    Locate a player's statistics block in a /fixtures/players payload.
    By id anywhere, then by name within the team, then (keepers) the team's
    goalkeeper who actually played.
    """
    def _first_stats(p: dict[str, Any]) -> dict[str, Any]:
        stats = p.get("statistics") or []
        return stats[0] if stats else {}

    for team in teams:
        for p in team.get("players") or []:
            if (p.get("player") or {}).get("id") == player.id:
                return (team.get("team") or {}).get("id"), _first_stats(p)

    own = [t for t in teams if (t.get("team") or {}).get("id") == team_id]
    for team in own:
        for p in team.get("players") or []:
            if names_match((p.get("player") or {}).get("name"), player.name):
                return team_id, _first_stats(p)

    if role == Role.GOALKEEPER:
        for team in own:
            for p in team.get("players") or []:
                games = _first_stats(p).get("games") or {}
                if games.get("position") == "G" and (games.get("minutes") or 0) > 0:
                    return team_id, _first_stats(p)
    return None
