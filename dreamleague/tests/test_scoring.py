"""
Fantasy points: minutes, universal modifiers, per-role sections, rating bonus,
and role normalization from free-text positions.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dreamleague.roles import Role, normalize_role
from dreamleague.scoring import (
    PlayerMatchStats,
    calculate_points,
    stats_from_api_block,
)


def _labels(result) -> dict[str, int]:
    return {e["label"]: e["points"] for e in result.breakdown}


# ---------- minutes and clean sheet ----------


@pytest.mark.parametrize(
    "minutes,expected",
    [(0, 0), (1, 1), (44, 1), (45, 2), (90, 2)],
)
def test_minutes_points(minutes, expected):
    result = calculate_points(PlayerMatchStats(minutes=minutes, goals_conceded=1), Role.ATTACKER)
    assert result.total == expected


def test_goalkeeper_clean_sheet_needs_sixty_minutes():
    at_59 = calculate_points(PlayerMatchStats(minutes=59, goals_conceded=0), Role.GOALKEEPER)
    at_60 = calculate_points(PlayerMatchStats(minutes=60, goals_conceded=0), Role.GOALKEEPER)
    assert at_59.total == 2
    assert at_60.total == 7
    assert "Portería a cero" not in _labels(at_59)
    assert _labels(at_60)["Portería a cero"] == 5


def test_goalkeeper_full_line():
    stats = PlayerMatchStats(minutes=90, goals_conceded=2, saves=4, penalties_saved=1)
    result = calculate_points(stats, Role.GOALKEEPER)
    # 2 minutes - 4 conceded + 4 saves + 5 penalty saved
    assert result.total == 7
    assert _labels(result) == {
        "Minutos jugados": 2,
        "Goles encajados": -4,
        "Paradas": 4,
        "Penaltis parados": 5,
    }


def test_goalkeeper_ignores_team_conceded():
    stats = PlayerMatchStats(minutes=90, goals_conceded=0, team_goals_conceded=2)
    assert calculate_points(stats, Role.GOALKEEPER).total == 7


# ---------- defenders ----------


def test_defender_seventy_minutes_team_kept_clean_sheet():
    stats = PlayerMatchStats(minutes=70, goals_conceded=0, team_goals_conceded=0)
    result = calculate_points(stats, Role.DEFENDER)
    assert result.total >= 6
    assert _labels(result)["Portería a cero"] == 4


def test_defender_clean_sheet_needs_sixty_minutes():
    at_59 = calculate_points(PlayerMatchStats(minutes=59, goals_conceded=0, team_goals_conceded=0), Role.DEFENDER)
    at_60 = calculate_points(PlayerMatchStats(minutes=60, goals_conceded=0, team_goals_conceded=0), Role.DEFENDER)
    assert at_59.total == 2
    assert "Portería a cero" not in _labels(at_59)
    assert at_60.total == 6
    assert _labels(at_60)["Portería a cero"] == 4


def test_defender_uses_team_goals_conceded():
    stats = PlayerMatchStats(minutes=90, goals_conceded=0, team_goals_conceded=2)
    result = calculate_points(stats, Role.DEFENDER)
    assert result.total == 0
    assert _labels(result) == {"Minutos jugados": 2, "Goles encajados": -2}


def test_defender_who_did_not_play_keeps_own_figure():
    stats = PlayerMatchStats(minutes=0, goals_conceded=0, team_goals_conceded=3)
    result = calculate_points(stats, Role.DEFENDER)
    assert result.total == 0
    assert result.breakdown == []


def test_defender_floor_divisions():
    stats = PlayerMatchStats(
        minutes=90, goals_conceded=1, duels_won=7, interceptions=9, shots_on_target=1, goals=1
    )
    result = calculate_points(stats, Role.DEFENDER)
    # 2 + 6 goal - 1 conceded + 1 shot + 3 duels + 1 interception
    assert result.total == 12


# ---------- midfielders and attackers ----------


def test_midfielder_sections():
    stats = PlayerMatchStats(
        minutes=90, goals=1, goals_conceded=3, shots_on_target=1,
        key_passes=2, dribbles_success=5, fouls_drawn=7, interceptions=4,
    )
    result = calculate_points(stats, Role.MIDFIELDER)
    assert result.total == 14
    assert _labels(result)["Goles encajados"] == -1


def test_midfielder_clean_sheet_is_one_point():
    result = calculate_points(PlayerMatchStats(minutes=60, goals_conceded=0), Role.MIDFIELDER)
    assert _labels(result)["Portería a cero"] == 1


def test_attacker_universal_and_goals():
    stats = PlayerMatchStats(minutes=30, goals=2, yellow_cards=1, penalties_scored=1)
    result = calculate_points(stats, Role.ATTACKER)
    assert result.total == 11


def test_red_card_and_penalties():
    stats = PlayerMatchStats(minutes=50, red_cards=1, penalties_committed=1, penalties_missed=1, penalties_won=1)
    # 2 - 3 - 2 - 2 + 2
    assert calculate_points(stats, Role.ATTACKER).total == -3


def test_zero_point_lines_are_omitted():
    result = calculate_points(PlayerMatchStats(minutes=90, goals_conceded=1, assists=0), Role.ATTACKER)
    assert [e["label"] for e in result.breakdown] == ["Minutos jugados"]


# ---------- rating bonus ----------


@pytest.mark.parametrize("rating,bonus", [(6.9, 0), (7.0, 1), (8.4, 2), (9.1, 3)])
def test_rating_bonus_when_enabled(rating, bonus):
    stats = PlayerMatchStats(minutes=90, goals_conceded=1, rating=rating)
    assert calculate_points(stats, Role.ATTACKER, include_rating_bonus=True).total == 2 + bonus
    assert calculate_points(stats, Role.ATTACKER).total == 2


def test_points_are_deterministic():
    stats = PlayerMatchStats(minutes=77, goals=1, assists=1, key_passes=3, fouls_drawn=4, goals_conceded=1)
    first = calculate_points(stats, Role.MIDFIELDER)
    second = calculate_points(stats, Role.MIDFIELDER)
    assert first.total == second.total
    assert first.breakdown == second.breakdown


# ---------- API block ----------


def test_stats_from_api_block_reads_goalkeeper_and_penalty_sections():
    block = {
        "games": {"minutes": 90, "rating": "7.3"},
        "goals": {"total": None, "conceded": 0, "assists": 1, "saves": None},
        "goalkeeper": {"conceded": 1, "saves": 3},
        "cards": {"yellow": 1, "red": 0},
        "penalty": {"won": None, "commited": 1, "scored": 0, "missed": 0, "saved": 1},
        "duels": {"won": "4"},
    }
    stats = stats_from_api_block(block, team_goals_conceded=1)
    assert stats.minutes == 90
    assert stats.rating == pytest.approx(7.3)
    assert stats.goals == 0
    assert stats.goals_conceded == 1
    assert stats.saves == 3
    assert stats.penalties_committed == 1
    assert stats.penalties_saved == 1
    assert stats.duels_won == 4
    assert stats.team_goals_conceded == 1


def test_stats_round_trip_through_dict():
    stats = PlayerMatchStats(minutes=12, goals=1, rating=6.5)
    assert PlayerMatchStats.from_dict({**stats.to_dict(), "unknown": 3}) == stats


# ---------- roles ----------


@pytest.mark.parametrize(
    "position,role",
    [
        ("Goalkeeper", Role.GOALKEEPER),
        ("G", Role.GOALKEEPER),
        ("POR", Role.GOALKEEPER),
        ("Defender", Role.DEFENDER),
        ("Centre-Back", Role.DEFENDER),
        ("D", Role.DEFENDER),
        ("Midfielder", Role.MIDFIELDER),
        ("cen", Role.MIDFIELDER),
        ("Attacker", Role.ATTACKER),
        ("Right Winger", Role.ATTACKER),
        ("Striker", Role.ATTACKER),
        ("DEL", Role.ATTACKER),
        ("", Role.MIDFIELDER),
        (None, Role.MIDFIELDER),
        ("Coach", Role.MIDFIELDER),
    ],
)
def test_normalize_role(position, role):
    assert normalize_role(position) == role
