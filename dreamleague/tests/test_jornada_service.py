"""
Jornada lifecycle: lock state, bet evaluation, the reset pipeline and its retry
behaviour, multi-league runs and advancing to the next jornada.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dreamleague.config import Settings
from dreamleague.errors import ConflictError, GatewayError, GatewayForbiddenError, NotFoundError, ValidationError
from dreamleague.models import BetStatus, JornadaStatus
from dreamleague.persistence.db import get_connection, init_db, set_db_path
from dreamleague.persistence.repositories import (
    BetRepository,
    JornadaSettlementRepository,
    LeagueMemberRepository,
    LeagueRepository,
    PlayerStatsRepository,
    SquadRepository,
)
from dreamleague.services.bet_service import BetService
from dreamleague.services.combi_service import CombiService
from dreamleague.services.jornada_service import JornadaService, _league_lock, round_budget

from dreamleague.tests.fakes import FakeGateway, fixture

SEASON = 2025


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "jornada_test.db"
    set_db_path(db_path)
    init_db(db_path=db_path)
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def settings():
    return Settings(bet_evaluation_delay_ms=0)


@pytest.fixture
def gateway():
    gw = FakeGateway()
    gw.add_fixture(fixture(100, "Real Madrid", "Getafe", 2, 0))
    gw.add_fixture(fixture(101, "Sevilla", "Real Betis", 1, 1, home_id=3, away_id=4))
    gw.add_fixture(fixture(200, "Girona", "Valencia", 0, 0, status="NS", home_id=5, away_id=6))
    return gw


@pytest.fixture
def service(gateway, settings):
    return JornadaService(gateway, settings)


@pytest.fixture
def league(db_conn):
    league = LeagueRepository().create(db_conn, "Liga Jornada", "user-1")
    members = LeagueMemberRepository()
    members.add(db_conn, league.id, "user-1", budget=500)
    members.add(db_conn, league.id, "user-2", budget=500)
    return league


def _squad(conn, league_id, user_id, player_ids, points_each=3, jornada=1):
    repo = SquadRepository()
    stats = PlayerStatsRepository()
    squad = repo.create(conn, user_id, league_id)
    for i, pid in enumerate(player_ids):
        repo.add_player(conn, squad.id, f"P{i}", pid, "Midfielder")
        stats.upsert(
            conn, pid, jornada, SEASON, fixture_id=100, team_id=1, total_points=points_each,
            points_breakdown=[], stats={"minutes": 90},
        )
    return squad


def _bet(conn, league_id, user_id, match_id, bet_type, bet_label, odd, amount, settings):
    return BetService(settings).place_bet(conn, league_id, user_id, match_id, bet_type, bet_label, odd, amount)


@pytest.fixture
def matchday(db_conn, league, settings):
    """Two members, three bets, one full squad and one short squad."""
    won = _bet(db_conn, league.id, "user-1", 100, "Resultado", "Ganará Real Madrid", 2.5, 10, settings)
    lost = _bet(db_conn, league.id, "user-2", 100, "Goles totales", "Más de 2.5", 1.8, 20, settings)
    open_bet = _bet(db_conn, league.id, "user-2", 200, "Resultado", "Empate", 3.0, 5, settings)
    _squad(db_conn, league.id, "user-1", range(1, 12))
    _squad(db_conn, league.id, "user-2", range(20, 25))
    return {"won": won, "lost": lost, "open": open_bet}


def _member(conn, league_id, user_id):
    return LeagueMemberRepository().get(conn, league_id, user_id)


# ---------- lock state ----------


def test_lock_and_unlock_are_idempotent(db_conn, league, service):
    assert service.lock_jornada(db_conn, league.id).jornada_status == JornadaStatus.LOCKED
    assert service.lock_jornada(db_conn, league.id).jornada_status == JornadaStatus.LOCKED
    status = service.get_jornada_status(db_conn, league.id)
    assert status == {"currentJornada": 1, "status": "locked", "leagueName": "Liga Jornada"}
    assert service.unlock_jornada(db_conn, league.id).jornada_status == JornadaStatus.EDITABLE
    assert service.unlock_jornada(db_conn, league.id).current_jornada == 1


def test_lock_unknown_league(db_conn, service):
    with pytest.raises(NotFoundError):
        service.lock_jornada(db_conn, "missing")


def test_lock_all_and_unlock_all(db_conn, league, service):
    LeagueRepository().create(db_conn, "Otra Liga", "user-9")
    result = service.lock_all(db_conn)
    assert result["total"] == 2
    assert result["succeeded"] == 2
    assert all(l.is_locked for l in LeagueRepository().list_all(db_conn))
    service.unlock_all(db_conn)
    assert not any(l.is_locked for l in LeagueRepository().list_all(db_conn))


# ---------- evaluation ----------


def test_evaluate_pending_bets_persists_outcomes(db_conn, league, matchday, service):
    evaluations = service.evaluate_pending_bets(db_conn, league.id, 1)
    by_bet = {e["betId"]: e for e in evaluations}
    assert by_bet[matchday["won"].id]["status"] == "won"
    assert by_bet[matchday["lost"].id]["status"] == "lost"
    assert by_bet[matchday["open"].id]["status"] == "pending"
    bets = BetRepository()
    assert bets.get(db_conn, matchday["won"].id).status == BetStatus.WON
    assert bets.get(db_conn, matchday["open"].id).status == BetStatus.PENDING


def test_fixtures_are_fetched_once_per_match(db_conn, league, matchday, service, gateway):
    service.evaluate_pending_bets(db_conn, league.id, 1)
    assert gateway.calls_to("get_fixture") == 2


def test_evaluation_waits_between_bets(db_conn, league, matchday, gateway):
    sleeps = []
    service = JornadaService(gateway, Settings(bet_evaluation_delay_ms=100), sleep=sleeps.append)
    service.evaluate_pending_bets(db_conn, league.id, 1)
    assert sleeps == [0.1, 0.1]


def test_gateway_failure_leaves_bet_pending(db_conn, league, matchday, service, gateway):
    gateway.fixture_failures[200] = GatewayError("timeout")
    evaluations = service.evaluate_pending_bets(db_conn, league.id, 1)
    failed = next(e for e in evaluations if e["matchId"] == 200)
    assert failed["status"] == "pending"
    assert failed["error"] == "timeout"
    assert BetRepository().get(db_conn, matchday["won"].id).status == BetStatus.WON


def test_preview_does_not_persist(db_conn, league, matchday, service):
    preview = service.preview_bets(db_conn, league.id, 1)
    won = next(p for p in preview if p["betId"] == matchday["won"].id)
    assert won["status"] == "won"
    assert won["profit"] == pytest.approx(15)
    lost = next(p for p in preview if p["betId"] == matchday["lost"].id)
    assert lost["profit"] == -20
    open_bet = next(p for p in preview if p["betId"] == matchday["open"].id)
    assert open_bet["profit"] is None
    assert BetRepository().get(db_conn, matchday["won"].id).status == BetStatus.PENDING


def test_squad_points_need_eleven_players(db_conn, league, matchday, service):
    assert service.squad_points(db_conn, league.id, "user-1", 1) == 33
    assert service.squad_points(db_conn, league.id, "user-2", 1) == 0
    assert service.squad_points(db_conn, league.id, "nobody", 1) == 0


# ---------- reset ----------


def test_reset_settles_budgets_and_clears(db_conn, league, matchday, service):
    LeagueRepository().update_jornada_status(db_conn, league.id, JornadaStatus.LOCKED)
    summary = service.reset_jornada(db_conn, league.id, 1)

    assert summary["evaluatedBets"] == 2
    assert summary["updatedMembers"] == 2
    assert summary["clearedSquads"] == 2
    assert summary["deletedBets"] == 2
    assert summary["alreadySettled"] is False
    assert summary["balances"]["user-1"] == {
        "totalProfit": pytest.approx(15), "wonBets": 1, "lostBets": 0, "squadPoints": 33,
    }

    one = _member(db_conn, league.id, "user-1")
    assert one.budget == 548
    assert one.initial_budget == 548
    assert one.betting_budget == 250
    assert one.points == 33
    assert one.points_per_jornada["1"] == 33
    two = _member(db_conn, league.id, "user-2")
    assert two.budget == 480
    assert two.points_per_jornada["1"] == 0

    squads = SquadRepository().list_for_league(db_conn, league.id)
    assert all(s.players == [] for s in squads)

    remaining = BetRepository().list_for_league_jornada(db_conn, league.id, 1)
    assert [b.id for b in remaining] == [matchday["open"].id]
    assert JornadaSettlementRepository().get(db_conn, league.id, 1) is not None


def test_second_reset_does_not_pay_twice(db_conn, league, matchday, service):
    service.reset_jornada(db_conn, league.id, 1)
    squads = SquadRepository()
    rebuilt = squads.get_for_user(db_conn, league.id, "user-1")
    for i, pid in enumerate(range(40, 51)):
        squads.add_player(db_conn, rebuilt.id, f"P{i}", pid, "Defender")
    again = service.reset_jornada(db_conn, league.id, 1)
    assert again["alreadySettled"] is True
    assert again["updatedMembers"] == 0
    assert _member(db_conn, league.id, "user-1").budget == 548
    # the lineup built after the first reset survives
    squad = SquadRepository().get_for_user(db_conn, league.id, "user-1")
    assert len(squad.players) == 11


def test_bet_settled_on_retry_pays_out_to_budget_only(db_conn, league, matchday, service, gateway):
    service.reset_jornada(db_conn, league.id, 1)
    before = _member(db_conn, league.id, "user-2")
    assert before.budget == 480
    gateway.fixtures[200] = fixture(200, "Girona", "Valencia", 1, 1, home_id=5, away_id=6)

    again = service.reset_jornada(db_conn, league.id, 1)
    assert again["alreadySettled"] is True
    assert again["evaluatedBets"] == 1
    assert again["updatedMembers"] == 1
    assert again["deletedBets"] == 1
    assert again["balances"]["user-2"]["totalProfit"] == pytest.approx(10)

    after = _member(db_conn, league.id, "user-2")
    # 5 @ 3.0 on the draw
    assert after.budget == 490
    assert after.initial_budget == 490
    assert after.betting_budget == before.betting_budget
    assert after.points == before.points
    assert after.points_per_jornada == before.points_per_jornada
    assert _member(db_conn, league.id, "user-1").budget == 548
    assert BetRepository().list_for_league_jornada(db_conn, league.id, 1) == []


def test_late_payout_is_applied_once(db_conn, league, matchday, service, gateway):
    service.reset_jornada(db_conn, league.id, 1)
    gateway.fixtures[200] = fixture(200, "Girona", "Valencia", 1, 1, home_id=5, away_id=6)
    service.reset_jornada(db_conn, league.id, 1)
    third = service.reset_jornada(db_conn, league.id, 1)
    assert third["updatedMembers"] == 0
    assert _member(db_conn, league.id, "user-2").budget == 490


def test_settled_bet_already_in_budget_is_only_purged(db_conn, league, service):
    service.reset_jornada(db_conn, league.id, 1)
    bets = BetRepository()
    # left behind by a run that applied budgets but did not get to the purge
    leftover = bets.create(db_conn, league.id, "user-1", 1, 100, "Resultado", "Ganará Real Madrid", 2.5, 10, 25)
    bets.update_status(db_conn, leftover.id, BetStatus.WON)
    bets.mark_settled_applied(db_conn, [leftover.id])
    again = service.reset_jornada(db_conn, league.id, 1)
    assert again["updatedMembers"] == 0
    assert again["deletedBets"] == 1
    assert _member(db_conn, league.id, "user-1").budget == 500


def test_combi_settled_on_retry_pays_out_to_budget(db_conn, league, service, gateway, settings):
    CombiService(settings).create_combi(
        db_conn, league.id, "user-1",
        [
            {"match_id": 100, "bet_type": "Resultado", "bet_label": "Ganará Real Madrid", "odd": 2.0},
            {"match_id": 200, "bet_type": "Resultado", "bet_label": "Empate", "odd": 3.0},
        ],
        10,
    )
    first = service.reset_jornada(db_conn, league.id, 1)
    assert first["combis"]["pending"] == 1
    assert _member(db_conn, league.id, "user-1").budget == 500

    gateway.fixtures[200] = fixture(200, "Girona", "Valencia", 0, 0, home_id=5, away_id=6)
    again = service.reset_jornada(db_conn, league.id, 1)
    assert again["combis"]["won"] == 1
    one = _member(db_conn, league.id, "user-1")
    assert one.budget == 550
    assert one.betting_budget == 250
    assert BetRepository().list_for_league_jornada(db_conn, league.id, 1) == []


def test_unexpected_squad_points_error_counts_zero(db_conn, league, matchday, service, monkeypatch, caplog):
    scored = service.squad_points

    def squad_points(conn, league_id, user_id, jornada):
        if user_id == "user-1":
            raise TypeError("malformed statistics payload")
        return scored(conn, league_id, user_id, jornada)

    monkeypatch.setattr(service, "squad_points", squad_points)
    summary = service.reset_jornada(db_conn, league.id, 1)
    assert summary["balances"]["user-1"]["squadPoints"] == 0
    assert summary["updatedMembers"] == 2
    one = _member(db_conn, league.id, "user-1")
    assert one.budget == 515
    assert one.points == 0
    assert "counting 0" in caplog.text


def test_rejected_api_key_aborts_reset(db_conn, league, matchday, service, gateway):
    gateway.failures["get_fixture"] = GatewayForbiddenError("403")
    with pytest.raises(GatewayForbiddenError):
        service.reset_jornada(db_conn, league.id, 1)
    assert _member(db_conn, league.id, "user-1").budget == 500
    assert JornadaSettlementRepository().get(db_conn, league.id, 1) is None


def test_reset_includes_combi_results(db_conn, league, service, settings):
    combis = CombiService(settings)
    combis.create_combi(
        db_conn, league.id, "user-1",
        [
            {"match_id": 100, "bet_type": "Resultado", "bet_label": "Ganará Real Madrid", "odd": 2.0},
            {"match_id": 101, "bet_type": "Resultado", "bet_label": "Empate", "odd": 3.0},
        ],
        10,
    )
    summary = service.reset_jornada(db_conn, league.id, 1)
    assert summary["combis"]["won"] == 1
    assert summary["balances"]["user-1"]["totalProfit"] == pytest.approx(50)
    one = _member(db_conn, league.id, "user-1")
    assert one.budget == 550
    assert one.betting_budget == 250
    assert BetRepository().list_for_league_jornada(db_conn, league.id, 1) == []


def test_concurrent_reset_is_rejected(db_conn, league, service):
    lock = _league_lock(league.id)
    lock.acquire()
    try:
        with pytest.raises(ConflictError) as exc:
            service.reset_jornada(db_conn, league.id, 1)
        assert exc.value.code == "RESET_IN_PROGRESS"
    finally:
        lock.release()


@pytest.mark.parametrize("jornada", [0, 39])
def test_reset_rejects_out_of_range_jornada(db_conn, league, service, jornada):
    with pytest.raises(ValidationError) as exc:
        service.reset_jornada(db_conn, league.id, jornada)
    assert exc.value.code == "INVALID_JORNADA"


def test_reset_unknown_league(db_conn, service):
    with pytest.raises(NotFoundError):
        service.reset_jornada(db_conn, "missing", 1)


def test_reset_all_reports_each_league(db_conn, league, matchday, service):
    other = LeagueRepository().create(db_conn, "Otra Liga", "user-9")
    LeagueMemberRepository().add(db_conn, other.id, "user-9")
    busy = LeagueRepository().create(db_conn, "Liga Ocupada", "user-8")
    lock = _league_lock(busy.id)
    lock.acquire()
    try:
        result = service.reset_all_leagues(db_conn, 1)
    finally:
        lock.release()
    assert result["leagues"] == 3
    outcome = {r["leagueId"]: r for r in result["results"]}
    assert outcome[league.id]["success"] is True
    assert outcome[other.id]["success"] is True
    assert outcome[busy.id]["error"]["code"] == "RESET_IN_PROGRESS"
    assert result["totals"]["updatedMembers"] == 3
    assert result["totals"]["deletedBets"] == 2


def test_advance_jornada_moves_forward_and_unlocks(db_conn, league, matchday, service):
    service.lock_jornada(db_conn, league.id)
    result = service.advance_jornada(db_conn, league.id)
    assert result["currentJornada"] == 2
    assert result["status"] == "editable"
    assert result["summary"]["jornada"] == 1


def test_advance_stops_at_last_jornada(db_conn, service):
    last = LeagueRepository().create(db_conn, "Final", "user-1", current_jornada=38)
    result = service.advance_jornada(db_conn, last.id)
    assert result["currentJornada"] == 38


def test_round_budget_rounds_halves_up():
    assert round_budget(547.5) == 548
    assert round_budget(547.4) == 547
    assert round_budget(-0.5) == 0
