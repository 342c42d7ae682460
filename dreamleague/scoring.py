"""
Fantasy scoring for football players.
Pure functions: raw match stats + role -> total points and an itemized breakdown.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from dreamleague.roles import Role


# ---------- Minutes ----------
MINUTES_UNDER_45_POINTS = 1
MINUTES_45_OR_MORE_POINTS = 2
CLEAN_SHEET_MINUTES = 60

# ---------- Universal (all roles) ----------
ASSIST_POINTS = 3
YELLOW_CARD_POINTS = -1
RED_CARD_POINTS = -3
PENALTY_WON_POINTS = 2
PENALTY_COMMITTED_POINTS = -2
PENALTY_SCORED_POINTS = 3
PENALTY_MISSED_POINTS = -2

# ---------- Goalkeeper ----------
GK_GOAL_POINTS = 10
GK_SAVE_POINTS = 1
GK_PENALTY_SAVED_POINTS = 5
GK_GOAL_CONCEDED_POINTS = -2
GK_CLEAN_SHEET_POINTS = 5

# ---------- Defender ----------
DEF_GOAL_POINTS = 6
DEF_CLEAN_SHEET_POINTS = 4
DEF_DUELS_WON_PER_POINT = 2
DEF_INTERCEPTIONS_PER_POINT = 5
DEF_SHOT_ON_TARGET_POINTS = 1
DEF_GOAL_CONCEDED_POINTS = -1

# ---------- Midfielder ----------
MID_GOAL_POINTS = 5
MID_CLEAN_SHEET_POINTS = 1
MID_KEY_PASS_POINTS = 1
MID_DRIBBLES_PER_POINT = 2
MID_FOULS_DRAWN_PER_POINT = 3
MID_INTERCEPTIONS_PER_POINT = 3
MID_SHOT_ON_TARGET_POINTS = 1
MID_GOALS_CONCEDED_PER_MINUS_POINT = 2

# ---------- Attacker ----------
ATT_GOAL_POINTS = 4
ATT_KEY_PASS_POINTS = 1
ATT_FOULS_DRAWN_PER_POINT = 3
ATT_DRIBBLES_PER_POINT = 2
ATT_SHOT_ON_TARGET_POINTS = 1

# ---------- Match rating (optional) ----------
RATING_BONUSES: tuple[tuple[float, int], ...] = ((9.0, 3), (8.0, 2), (7.0, 1))


@dataclass
class PlayerMatchStats:
    """
    One player's stats for one fixture, flattened from the API's per-player block.
    goals_conceded is the player's own figure (goalkeeper block for keepers);
    team_goals_conceded is what the whole team let in, when known.
    """
    minutes: int = 0
    rating: float | None = None
    goals: int = 0
    assists: int = 0
    goals_conceded: int = 0
    team_goals_conceded: int | None = None
    saves: int = 0
    yellow_cards: int = 0
    red_cards: int = 0
    penalties_won: int = 0
    penalties_committed: int = 0
    penalties_scored: int = 0
    penalties_missed: int = 0
    penalties_saved: int = 0
    shots_on_target: int = 0
    key_passes: int = 0
    dribbles_success: int = 0
    fouls_drawn: int = 0
    duels_won: int = 0
    interceptions: int = 0

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerMatchStats":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)


@dataclass
class PointsResult:
    total: int
    breakdown: list[dict[str, Any]] = field(default_factory=list)


class _Breakdown:
    """Accumulates {label, amount, points} lines; zero-point lines are dropped."""

    def __init__(self) -> None:
        self.entries: list[dict[str, Any]] = []
        self.total = 0

    def add(self, label: str, amount: Any, points: int) -> None:
        if points == 0:
            return
        self.entries.append({"label": label, "amount": amount, "points": points})
        self.total += points


def _int(value: Any) -> int:
    if value is None or value == "":
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def stats_from_api_block(block: dict[str, Any], team_goals_conceded: int | None = None) -> PlayerMatchStats:
    """
    Build PlayerMatchStats from one entry of /fixtures/players statistics[0].
    Missing sections count as zero.
    """
    games = block.get("games") or {}
    goals = block.get("goals") or {}
    cards = block.get("cards") or {}
    penalty = block.get("penalty") or {}
    shots = block.get("shots") or {}
    passes = block.get("passes") or {}
    dribbles = block.get("dribbles") or {}
    fouls = block.get("fouls") or {}
    duels = block.get("duels") or {}
    tackles = block.get("tackles") or {}
    goalkeeper = block.get("goalkeeper") or {}

    rating_raw = games.get("rating")
    try:
        rating = float(rating_raw) if rating_raw not in (None, "") else None
    except (TypeError, ValueError):
        rating = None

    conceded = goalkeeper.get("conceded")
    if conceded is None:
        conceded = goals.get("conceded")
    saves = goalkeeper.get("saves")
    if saves is None:
        saves = goals.get("saves")
    saved_pens = penalty.get("saved")
    if saved_pens is None:
        saved_pens = goalkeeper.get("saved")

    return PlayerMatchStats(
        minutes=_int(games.get("minutes")),
        rating=rating,
        goals=_int(goals.get("total")),
        assists=_int(goals.get("assists")),
        goals_conceded=_int(conceded),
        team_goals_conceded=team_goals_conceded,
        saves=_int(saves),
        yellow_cards=_int(cards.get("yellow")),
        red_cards=_int(cards.get("red")),
        penalties_won=_int(penalty.get("won")),
        penalties_committed=_int(penalty.get("commited", penalty.get("committed"))),
        penalties_scored=_int(penalty.get("scored")),
        penalties_missed=_int(penalty.get("missed")),
        penalties_saved=_int(saved_pens),
        shots_on_target=_int(shots.get("on")),
        key_passes=_int(passes.get("key")),
        dribbles_success=_int(dribbles.get("success")),
        fouls_drawn=_int(fouls.get("drawn")),
        duels_won=_int(duels.get("won")),
        interceptions=_int(tackles.get("interceptions")),
    )


# ---------- Sections ----------


def _minutes_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    if stats.minutes <= 0:
        return
    points = MINUTES_45_OR_MORE_POINTS if stats.minutes >= 45 else MINUTES_UNDER_45_POINTS
    b.add("Minutos jugados", stats.minutes, points)


def _universal_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    b.add("Asistencias", stats.assists, stats.assists * ASSIST_POINTS)
    b.add("Tarjetas amarillas", stats.yellow_cards, stats.yellow_cards * YELLOW_CARD_POINTS)
    b.add("Tarjetas rojas", stats.red_cards, stats.red_cards * RED_CARD_POINTS)
    b.add("Penaltis ganados", stats.penalties_won, stats.penalties_won * PENALTY_WON_POINTS)
    b.add("Penaltis cometidos", stats.penalties_committed, stats.penalties_committed * PENALTY_COMMITTED_POINTS)
    b.add("Penaltis marcados", stats.penalties_scored, stats.penalties_scored * PENALTY_SCORED_POINTS)
    b.add("Penaltis fallados", stats.penalties_missed, stats.penalties_missed * PENALTY_MISSED_POINTS)


def _clean_sheet(stats: PlayerMatchStats, conceded: int) -> bool:
    return stats.minutes >= CLEAN_SHEET_MINUTES and conceded == 0


def _goalkeeper_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    conceded = stats.goals_conceded
    b.add("Goles marcados", stats.goals, stats.goals * GK_GOAL_POINTS)
    if _clean_sheet(stats, conceded):
        b.add("Portería a cero", "Sí", GK_CLEAN_SHEET_POINTS)
    b.add("Goles encajados", conceded, conceded * GK_GOAL_CONCEDED_POINTS)
    b.add("Paradas", stats.saves, stats.saves * GK_SAVE_POINTS)
    b.add("Penaltis parados", stats.penalties_saved, stats.penalties_saved * GK_PENALTY_SAVED_POINTS)


def _defender_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    # Defenders who played are judged on what the whole team let in
    conceded = stats.goals_conceded
    if stats.team_goals_conceded is not None and stats.minutes > 0:
        conceded = stats.team_goals_conceded
    b.add("Goles marcados", stats.goals, stats.goals * DEF_GOAL_POINTS)
    if _clean_sheet(stats, conceded):
        b.add("Portería a cero", "Sí", DEF_CLEAN_SHEET_POINTS)
    b.add("Goles encajados", conceded, conceded * DEF_GOAL_CONCEDED_POINTS)
    b.add("Tiros a puerta", stats.shots_on_target, stats.shots_on_target * DEF_SHOT_ON_TARGET_POINTS)
    b.add("Duelos ganados", stats.duels_won, stats.duels_won // DEF_DUELS_WON_PER_POINT)
    b.add("Intercepciones", stats.interceptions, stats.interceptions // DEF_INTERCEPTIONS_PER_POINT)


def _midfielder_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    conceded = stats.goals_conceded
    b.add("Goles marcados", stats.goals, stats.goals * MID_GOAL_POINTS)
    if _clean_sheet(stats, conceded):
        b.add("Portería a cero", "Sí", MID_CLEAN_SHEET_POINTS)
    b.add("Goles encajados", conceded, -(conceded // MID_GOALS_CONCEDED_PER_MINUS_POINT))
    b.add("Tiros a puerta", stats.shots_on_target, stats.shots_on_target * MID_SHOT_ON_TARGET_POINTS)
    b.add("Pases clave", stats.key_passes, stats.key_passes * MID_KEY_PASS_POINTS)
    b.add("Regates exitosos", stats.dribbles_success, stats.dribbles_success // MID_DRIBBLES_PER_POINT)
    b.add("Faltas recibidas", stats.fouls_drawn, stats.fouls_drawn // MID_FOULS_DRAWN_PER_POINT)
    b.add("Intercepciones", stats.interceptions, stats.interceptions // MID_INTERCEPTIONS_PER_POINT)


def _attacker_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    b.add("Goles marcados", stats.goals, stats.goals * ATT_GOAL_POINTS)
    b.add("Tiros a puerta", stats.shots_on_target, stats.shots_on_target * ATT_SHOT_ON_TARGET_POINTS)
    b.add("Pases clave", stats.key_passes, stats.key_passes * ATT_KEY_PASS_POINTS)
    b.add("Regates exitosos", stats.dribbles_success, stats.dribbles_success // ATT_DRIBBLES_PER_POINT)
    b.add("Faltas recibidas", stats.fouls_drawn, stats.fouls_drawn // ATT_FOULS_DRAWN_PER_POINT)


def _rating_points(stats: PlayerMatchStats, b: _Breakdown) -> None:
    if stats.rating is None:
        return
    for threshold, points in RATING_BONUSES:
        if stats.rating >= threshold:
            b.add("Valoración del partido", f"{stats.rating:.1f}", points)
            return


_ROLE_SECTIONS = {
    Role.GOALKEEPER: _goalkeeper_points,
    Role.DEFENDER: _defender_points,
    Role.MIDFIELDER: _midfielder_points,
    Role.ATTACKER: _attacker_points,
}


def calculate_points(
    stats: PlayerMatchStats,
    role: Role,
    include_rating_bonus: bool = False,
) -> PointsResult:
    """
    Compute fantasy points for one player in one fixture.
    Order: minutes, universal modifiers, role section, optional rating bonus.
    """
    b = _Breakdown()
    _minutes_points(stats, b)
    _universal_points(stats, b)
    _ROLE_SECTIONS[Role(role)](stats, b)
    if include_rating_bonus:
        _rating_points(stats, b)
    return PointsResult(total=b.total, breakdown=b.entries)
