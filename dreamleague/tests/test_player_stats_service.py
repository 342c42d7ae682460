"""
Player stats read-through cache: lookup of the player's fixture entry, minutes
normalization from substitutions, zero records, forced refresh and bulk refresh.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dreamleague.config import Settings
from dreamleague.errors import GatewayError, GatewayForbiddenError, NotFoundError
from dreamleague.models import Player
from dreamleague.persistence.db import get_connection, init_db, set_db_path
from dreamleague.persistence.repositories import PlayerRepository, PlayerStatsRepository
from dreamleague.services.player_stats_service import (
    PlayerStatsService,
    names_match,
    normalize_minutes,
    normalize_name,
)

from dreamleague.tests.fakes import (
    FakeGateway,
    fixture,
    player_block,
    season_row,
    subst,
    team_players,
)

SEASON = 2025


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "stats_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def gateway():
    gw = FakeGateway()
    gw.add_fixture(fixture(100, "Real Madrid", "Getafe", 1, 0, home_id=1, away_id=2))
    gw.fixture_players[100] = [
        team_players(1, "Real Madrid", [
            player_block(10, "D. Carvajal", 90, "D", duels={"won": 4}),
            player_block(11, "L. Modrić", 34, "M", substitute=True),
            player_block(1, "Thibaut Courtois", 90, "G", goalkeeper={"conceded": 0, "saves": 3}),
        ]),
        team_players(2, "Getafe", [
            player_block(50, "Mauro Arambarri", 90, "M", goals={"conceded": 1}),
        ]),
    ]
    gw.events[100] = [subst(60, (8, "Toni Kroos"), (11, "Luka Modrić"))]
    gw.player_seasons[10] = [season_row(10, "Dani Carvajal", 1)]
    gw.player_seasons[20] = [season_row(20, "Andriy Lunin", 1)]
    gw.search_results["modric"] = [season_row(11, "Luka Modrić", 1)]
    return gw


@pytest.fixture
def players(db_conn):
    repo = PlayerRepository()
    repo.upsert(db_conn, 10, "Dani Carvajal", "Defender", team_id=1, team_name="Real Madrid", price=18)
    repo.upsert(db_conn, 11, "Luka Modrić", "Midfielder", price=9)
    repo.upsert(db_conn, 20, "Andriy Lunin", "Goalkeeper", team_id=1, team_name="Real Madrid", price=6)
    repo.upsert(db_conn, 30, "Nobody Known", "Attacker", team_id=5, team_name="Elsewhere", price=3)
    return repo


@pytest.fixture
def service(gateway):
    return PlayerStatsService(gateway, Settings())


def test_computes_persists_and_updates_player(db_conn, players, service):
    record = service.get_or_compute(db_conn, 10, 1, SEASON)
    # 2 minutes + 4 clean sheet + 4 duels // 2
    assert record.total_points == 8
    assert record.fixture_id == 100
    assert record.team_id == 1
    labels = [e["label"] for e in record.points_breakdown]
    assert "Portería a cero" in labels
    player = players.get(db_conn, 10)
    assert player.last_jornada_points == 8
    assert player.last_jornada_number == 1
    assert player.price == 18


def test_stored_record_is_served_without_gateway_calls(db_conn, players, service, gateway):
    service.get_or_compute(db_conn, 10, 1, SEASON)
    calls = len(gateway.calls)
    again = service.get_or_compute(db_conn, 10, 1, SEASON)
    assert again.total_points == 8
    assert len(gateway.calls) == calls


def test_force_refresh_recomputes(db_conn, players, service, gateway):
    service.get_or_compute(db_conn, 10, 1, SEASON)
    gateway.fixture_players[100][0]["players"][0]["statistics"][0]["goals"] = {"total": 1}
    refreshed = service.get_or_compute(db_conn, 10, 1, SEASON, force_refresh=True)
    assert refreshed.total_points == 14


def test_substitute_minutes_come_from_events(db_conn, players, service):
    record = service.get_or_compute(db_conn, 11, 1, SEASON)
    assert record.stats["minutes"] == 30
    assert record.total_points == 1


def test_team_found_by_name_search(db_conn, players, service, gateway):
    service.get_or_compute(db_conn, 11, 1, SEASON)
    assert ("search_players", "modric") in gateway.calls


def test_events_failure_falls_back_to_raw_minutes(db_conn, players, service, gateway):
    gateway.failures["get_fixture_events"] = GatewayError("events down")
    record = service.get_or_compute(db_conn, 11, 1, SEASON)
    assert record.stats["minutes"] == 34


def test_goalkeeper_fallback_uses_keeper_who_played(db_conn, players, service):
    record = service.get_or_compute(db_conn, 20, 1, SEASON)
    # 2 minutes + 5 clean sheet + 3 saves
    assert record.total_points == 10


def test_player_not_in_any_fixture_gets_zero_record(db_conn, players, service):
    record = service.get_or_compute(db_conn, 30, 1, SEASON)
    assert record.total_points == 0
    assert record.fixture_id == 0
    assert PlayerStatsRepository().get(db_conn, 30, 1, SEASON) is not None
    assert players.get(db_conn, 30).last_jornada_points == 0


def test_forced_refresh_keeps_existing_points_when_player_not_found(db_conn, players, service):
    PlayerStatsRepository().upsert(
        db_conn, 30, 1, SEASON, fixture_id=999, team_id=5, total_points=9,
        points_breakdown=[{"label": "Goles marcados", "amount": 1, "points": 9}], stats={"minutes": 90},
    )
    record = service.get_or_compute(db_conn, 30, 1, SEASON, force_refresh=True)
    assert record.total_points == 9
    assert record.fixture_id == 999


def test_unknown_player_is_not_found(db_conn, players, service):
    with pytest.raises(NotFoundError):
        service.get_or_compute(db_conn, 12345, 1, SEASON)


def test_get_multiple_jornadas(db_conn, players, service):
    records = service.get_multiple_jornadas(db_conn, 10, [1, 2], SEASON)
    assert [r.jornada for r in records] == [1, 2]
    assert records[0].total_points == 8
    assert records[1].total_points == 0


def test_update_all_players_counts_failures(db_conn, players, service, gateway):
    gateway.add_fixture(fixture(101, "Sevilla", "Betis", 0, 0, home_id=3, away_id=4))
    gateway.fixture_failures[101] = GatewayError("players endpoint down")
    players.upsert(db_conn, 40, "Isco Alarcón", "Midfielder", team_id=4, team_name="Betis")
    result = service.update_all_players_for_jornada(db_conn, 1, SEASON)
    assert result["total"] == 5
    assert result["success"] == 4
    assert result["errors"] == 1
    assert result["failed"][0]["player_id"] == 40


def test_update_all_players_aborts_on_rejected_key(db_conn, players, service, gateway):
    gateway.failures["get_round_fixtures"] = GatewayForbiddenError("403")
    with pytest.raises(GatewayForbiddenError):
        service.update_all_players_for_jornada(db_conn, 1, SEASON)


# ---------- pure helpers ----------


def test_normalize_name_and_match():
    assert normalize_name("L. Modrić") == "l modric"
    assert names_match("L. Modrić", "Luka Modric")
    assert names_match("Vinícius Júnior", "vinicius junior")
    assert not names_match("Luka Modric", "Mario Modric")
    assert not names_match("Toni Kroos", "Luka Modric")
    assert not names_match("", "Luka Modric")


def _player(pid: int = 7, name: str = "Test Player") -> Player:
    return Player(id=pid, name=name, position="Attacker", team_id=1, team_name="T", price=1)


def test_normalize_minutes_substitute_without_event():
    assert normalize_minutes(25, True, [], _player()) == 25


def test_normalize_minutes_subbed_off_in_stoppage_time():
    events = [subst(45, (7, "Test Player"), (99, "Other"))]
    assert normalize_minutes(48, False, events, _player()) == 45


def test_normalize_minutes_never_zero_and_capped():
    assert normalize_minutes(0, False, [], _player()) == 0
    events = [subst(90, (99, "Other"), (7, "Test Player"))]
    assert normalize_minutes(3, True, events, _player()) == 1
    assert normalize_minutes(97, False, [], _player()) == 90
