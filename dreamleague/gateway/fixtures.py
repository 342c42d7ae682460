"""
Fixture data as consumed by bet evaluation and player-stats extraction.
Parsed once from API-Football payloads; callers never touch raw JSON.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

# Fixture statuses that settle bets (full time, after extra time, after penalties)
FINAL_STATUSES = frozenset({"FT", "AET", "PEN"})


def to_int(value: Any) -> int:
    """API stat values come as int, float, "7", "54%" or null. Unknown -> 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        cleaned = value.strip().replace("%", "")
        if cleaned.isdigit():
            return int(cleaned)
    return 0


@dataclass(frozen=True)
class FixtureResult:
    fixture_id: int
    status_short: str
    home_team_id: int | None
    home_team: str
    away_team_id: int | None
    away_team: str
    home_goals: int
    away_goals: int
    round: str | None = None

    @property
    def is_finished(self) -> bool:
        return self.status_short in FINAL_STATUSES

    @property
    def total_goals(self) -> int:
        return self.home_goals + self.away_goals

    def goals_conceded_by(self, team_id: int | None) -> int | None:
        """Goals the given side let in, None if the team did not play this fixture."""
        if team_id is None:
            return None
        if team_id == self.home_team_id:
            return self.away_goals
        if team_id == self.away_team_id:
            return self.home_goals
        return None

    def involves(self, team_id: int | None) -> bool:
        return team_id is not None and team_id in (self.home_team_id, self.away_team_id)

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "FixtureResult":
        fixture = row.get("fixture") or {}
        teams = row.get("teams") or {}
        goals = row.get("goals") or {}
        league = row.get("league") or {}
        home = teams.get("home") or {}
        away = teams.get("away") or {}
        return cls(
            fixture_id=to_int(fixture.get("id")),
            status_short=((fixture.get("status") or {}).get("short") or ""),
            home_team_id=home.get("id"),
            home_team=home.get("name") or "",
            away_team_id=away.get("id"),
            away_team=away.get("name") or "",
            home_goals=to_int(goals.get("home")),
            away_goals=to_int(goals.get("away")),
            round=league.get("round"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fixture_id": self.fixture_id,
            "status": self.status_short,
            "home_team": self.home_team,
            "away_team": self.away_team,
            "home_goals": self.home_goals,
            "away_goals": self.away_goals,
        }


@dataclass(frozen=True)
class FixtureStatistics:
    fixture_id: int
    corners_home: int = 0
    corners_away: int = 0
    yellow_home: int = 0
    yellow_away: int = 0
    red_home: int = 0
    red_away: int = 0
    shots_on_target_home: int = 0
    shots_on_target_away: int = 0

    @property
    def total_corners(self) -> int:
        return self.corners_home + self.corners_away

    @property
    def total_cards(self) -> int:
        return self.yellow_home + self.yellow_away + self.red_home + self.red_away

    @property
    def total_shots_on_target(self) -> int:
        return self.shots_on_target_home + self.shots_on_target_away

    @classmethod
    def from_api(cls, fixture_id: int, rows: list[dict[str, Any]]) -> "FixtureStatistics":
        """rows[0] is the home team, rows[1] the away team. Missing rows count as zero."""
        by_team: list[dict[str, int]] = []
        for row in rows[:2]:
            team_stats: dict[str, int] = {}
            for stat in row.get("statistics") or []:
                key = (stat.get("type") or "").strip().upper()
                team_stats[key] = to_int(stat.get("value"))
            by_team.append(team_stats)
        while len(by_team) < 2:
            by_team.append({})
        home, away = by_team
        return cls(
            fixture_id=fixture_id,
            corners_home=home.get("CORNER KICKS", 0),
            corners_away=away.get("CORNER KICKS", 0),
            yellow_home=home.get("YELLOW CARDS", 0),
            yellow_away=away.get("YELLOW CARDS", 0),
            red_home=home.get("RED CARDS", 0),
            red_away=away.get("RED CARDS", 0),
            shots_on_target_home=home.get("SHOTS ON GOAL", 0),
            shots_on_target_away=away.get("SHOTS ON GOAL", 0),
        )
