"""
Jornada lifecycle: per-league lock state and the reset pipeline that settles a
matchday and rolls the league forward.

Reset order: evaluate bets and combis -> aggregate balances -> squad points ->
apply budgets and clear squads -> purge settled bets -> summary.
Budget application is recorded per (league, jornada) and per settled bet, so a
retried reset never pays out twice. Bets that settle on a retry still reach the
budget; points, squads and the betting budget are left alone.
"""
from __future__ import annotations

import logging
import math
import sqlite3
import threading
import time
from typing import Any, Callable

from dreamleague.betting.evaluator import Outcome, bet_profit, evaluate_bet
from dreamleague.betting.labels import BetStat, parse_bet
from dreamleague.config import Settings, get_settings
from dreamleague.errors import (
    AppError,
    ConflictError,
    GatewayForbiddenError,
    NotFoundError,
    ValidationError,
)
from dreamleague.gateway.fixtures import FixtureResult, FixtureStatistics
from dreamleague.models import TOTAL_JORNADAS, Bet, BetCombi, BetStatus, JornadaStatus, League, LeagueMember
from dreamleague.persistence.repositories import (
    BetCombiRepository,
    BetRepository,
    JornadaSettlementRepository,
    LeagueMemberRepository,
    LeagueRepository,
    SquadRepository,
)
from dreamleague.services.combi_service import CombiService
from dreamleague.services.player_stats_service import PlayerStatsService

logger = logging.getLogger(__name__)

MIN_SQUAD_SIZE = 11

# ---------- per-league reset guard ----------

_reset_locks: dict[str, threading.Lock] = {}
_reset_locks_guard = threading.Lock()


def _league_lock(league_id: str) -> threading.Lock:
    with _reset_locks_guard:
        lock = _reset_locks.get(league_id)
        if lock is None:
            lock = threading.Lock()
            _reset_locks[league_id] = lock
        return lock


def round_budget(value: float) -> int:
    """Budgets are whole numbers; halves round up."""
    return int(math.floor(value + 0.5))


def validate_jornada(jornada: int) -> None:
    if jornada < 1 or jornada > TOTAL_JORNADAS:
        raise ValidationError(
            f"Jornada must be between 1 and {TOTAL_JORNADAS} (got {jornada})",
            code="INVALID_JORNADA",
        )


class _FixtureLookup:
    """Fixture and statistics fetched at most once per match during one pass."""

    def __init__(self, gateway: Any) -> None:
        self._gateway = gateway
        self._fixtures: dict[int, FixtureResult | None] = {}
        self._statistics: dict[int, FixtureStatistics | None] = {}

    def fixture(self, match_id: int) -> FixtureResult | None:
        if match_id not in self._fixtures:
            self._fixtures[match_id] = self._gateway.get_fixture(match_id)
        return self._fixtures[match_id]

    def statistics(self, match_id: int) -> FixtureStatistics | None:
        if match_id not in self._statistics:
            self._statistics[match_id] = self._gateway.get_fixture_statistics(match_id)
        return self._statistics[match_id]


class JornadaService:
    """
    Orchestrates lock/unlock and the matchday reset for leagues.
    The gateway is injected (FootballApiClient in production, a fake in tests).
    """

    def __init__(
        self,
        gateway: Any,
        settings: Settings | None = None,
        stats_service: PlayerStatsService | None = None,
        combi_service: CombiService | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._gateway = gateway
        self._settings = settings or get_settings()
        self._stats = stats_service or PlayerStatsService(gateway, self._settings)
        self._combis = combi_service or CombiService(self._settings)
        self._sleep = sleep
        self._league_repo = LeagueRepository()
        self._member_repo = LeagueMemberRepository()
        self._squad_repo = SquadRepository()
        self._bet_repo = BetRepository()
        self._combi_repo = BetCombiRepository()
        self._settlement_repo = JornadaSettlementRepository()

    def _get_league(self, conn: sqlite3.Connection, league_id: str) -> League:
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError(f"League not found: {league_id}")
        return league

    # ---------- lock state ----------

    def lock_jornada(self, conn: sqlite3.Connection, league_id: str) -> League:
        """Block bet and squad changes. Idempotent; the jornada number is unchanged."""
        self._get_league(conn, league_id)
        self._league_repo.update_jornada_status(conn, league_id, JornadaStatus.LOCKED)
        logger.info("League %s locked", league_id)
        return self._get_league(conn, league_id)

    def unlock_jornada(self, conn: sqlite3.Connection, league_id: str) -> League:
        self._get_league(conn, league_id)
        self._league_repo.update_jornada_status(conn, league_id, JornadaStatus.EDITABLE)
        logger.info("League %s unlocked", league_id)
        return self._get_league(conn, league_id)

    def get_jornada_status(self, conn: sqlite3.Connection, league_id: str) -> dict[str, Any]:
        league = self._get_league(conn, league_id)
        return {
            "currentJornada": league.current_jornada,
            "status": league.jornada_status,
            "leagueName": league.name,
        }

    def lock_all(self, conn: sqlite3.Connection) -> dict[str, Any]:
        return self._for_each_league(conn, self.lock_jornada)

    def unlock_all(self, conn: sqlite3.Connection) -> dict[str, Any]:
        return self._for_each_league(conn, self.unlock_jornada)

    def _for_each_league(
        self, conn: sqlite3.Connection, action: Callable[[sqlite3.Connection, str], League]
    ) -> dict[str, Any]:
        results: list[dict[str, Any]] = []
        for league in self._league_repo.list_all(conn):
            try:
                action(conn, league.id)
                results.append({"leagueId": league.id, "success": True})
            except AppError as e:
                logger.warning("League %s: %s", league.id, e.message)
                results.append({"leagueId": league.id, "success": False, "error": e.to_dict()})
        return {
            "total": len(results),
            "succeeded": sum(1 for r in results if r["success"]),
            "results": results,
        }

    # ---------- bet evaluation ----------

    def _evaluate_one(self, bet: Bet, lookup: _FixtureLookup) -> tuple[Outcome, str]:
        fixture = lookup.fixture(bet.match_id)
        if fixture is None:
            return Outcome.UNRESOLVED, "fixture not found"
        statistics = None
        parsed = parse_bet(bet.bet_type, bet.bet_label, fixture.home_team, fixture.away_team)
        if fixture.is_finished and parsed.stat is not None and parsed.stat != BetStat.GOALS:
            statistics = lookup.statistics(bet.match_id)
        evaluation = evaluate_bet(bet.bet_type, bet.bet_label, fixture, statistics)
        return evaluation.outcome, evaluation.actual

    def evaluate_pending_bets(
        self, conn: sqlite3.Connection, league_id: str, jornada: int
    ) -> list[dict[str, Any]]:
        """
        Settle every pending bet (singles and combi legs) of the league's jornada.
        Each status is persisted as soon as it is known. A bet whose lookup fails
        stays pending; a rejected API key aborts the pass.
        """
        pending = self._bet_repo.list_pending_for_league(conn, league_id, jornada)
        lookup = _FixtureLookup(self._gateway)
        delay = self._settings.bet_evaluation_delay_ms / 1000.0
        evaluations: list[dict[str, Any]] = []
        for i, bet in enumerate(pending):
            if i > 0 and delay > 0:
                self._sleep(delay)
            entry: dict[str, Any] = {
                "betId": bet.id,
                "userId": bet.user_id,
                "matchId": bet.match_id,
                "combiId": bet.combi_id,
            }
            try:
                outcome, actual = self._evaluate_one(bet, lookup)
            except GatewayForbiddenError:
                raise
            except AppError as e:
                logger.warning("Bet %s (match %s) left pending: %s", bet.id, bet.match_id, e.message)
                entry.update(status=BetStatus.PENDING.value, error=e.message)
                evaluations.append(entry)
                continue
            if outcome == Outcome.UNRESOLVED:
                entry.update(status=BetStatus.PENDING.value, actual=actual)
            else:
                self._bet_repo.update_status(conn, bet.id, outcome.value)
                entry.update(status=outcome.value, actual=actual)
            evaluations.append(entry)
        logger.info(
            "League %s jornada %s: %s pending bets evaluated", league_id, jornada, len(pending)
        )
        return evaluations

    def preview_bets(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> list[dict[str, Any]]:
        """Evaluate the jornada's bets as they stand now without persisting anything."""
        self._get_league(conn, league_id)
        lookup = _FixtureLookup(self._gateway)
        preview: list[dict[str, Any]] = []
        for bet in self._bet_repo.list_for_league_jornada(conn, league_id, jornada):
            status = bet.status
            if status == BetStatus.PENDING:
                outcome, _ = self._evaluate_one(bet, lookup)
                status = BetStatus.PENDING.value if outcome == Outcome.UNRESOLVED else outcome.value
            profit = None
            if status != BetStatus.PENDING and bet.combi_id is None:
                profit = bet_profit(bet.amount, bet.odd, status == BetStatus.WON)
            preview.append({
                "betId": bet.id,
                "userId": bet.user_id,
                "matchId": bet.match_id,
                "combiId": bet.combi_id,
                "betType": bet.bet_type,
                "betLabel": bet.bet_label,
                "status": status,
                "profit": profit,
            })
        return preview

    # ---------- points ----------

    def squad_points(self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int) -> int:
        """Sum of the lineup's jornada points; lineups short of 11 players score 0."""
        squad = self._squad_repo.get_for_user(conn, league_id, user_id)
        if squad is None or len(squad.players) < MIN_SQUAD_SIZE:
            return 0
        total = 0
        for slot in squad.players:
            total += self._stats.get_or_compute(conn, slot.player_id, jornada).total_points
        return total

    def _unapplied_results(
        self, conn: sqlite3.Connection, league_id: str, jornada: int
    ) -> tuple[list[Bet], list[BetCombi]]:
        """Settled single bets and combis whose result is not yet in a member budget."""
        bets = [
            b for b in self._bet_repo.list_for_league_jornada(conn, league_id, jornada)
            if b.combi_id is None and b.status != BetStatus.PENDING and not b.settled_applied
        ]
        combis = [
            c for c in self._combi_repo.list_for_league_jornada(conn, league_id, jornada)
            if c.status != BetStatus.PENDING and not c.settled_applied
        ]
        return bets, combis

    @staticmethod
    def _aggregate_balances(
        user_ids: list[str], bets: list[Bet], combis: list[BetCombi]
    ) -> dict[str, dict[str, Any]]:
        balances: dict[str, dict[str, Any]] = {
            uid: {"totalProfit": 0.0, "wonBets": 0, "lostBets": 0, "squadPoints": 0} for uid in user_ids
        }
        for bet in bets:
            row = balances.setdefault(
                bet.user_id, {"totalProfit": 0.0, "wonBets": 0, "lostBets": 0, "squadPoints": 0}
            )
            won = bet.status == BetStatus.WON
            row["totalProfit"] += bet_profit(bet.amount, bet.odd, won)
            row["wonBets" if won else "lostBets"] += 1
        for combi in combis:
            row = balances.get(combi.user_id)
            if row is None:
                continue
            won = combi.status == BetStatus.WON
            row["totalProfit"] += combi.potential_win - combi.amount if won else -combi.amount
            row["wonBets" if won else "lostBets"] += 1
        return balances

    # ---------- reset pipeline ----------

    def reset_jornada(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> dict[str, Any]:
        self._get_league(conn, league_id)
        validate_jornada(jornada)
        lock = _league_lock(league_id)
        if not lock.acquire(blocking=False):
            raise ConflictError(
                f"A reset is already running for league {league_id}", code="RESET_IN_PROGRESS"
            )
        try:
            return self._run_reset(conn, league_id, jornada)
        finally:
            lock.release()

    def _run_reset(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> dict[str, Any]:
        logger.info("Reset of league %s jornada %s started", league_id, jornada)
        already_settled = self._settlement_repo.get(conn, league_id, jornada) is not None

        # 1. bets, then combis from their legs
        evaluations = self.evaluate_pending_bets(conn, league_id, jornada)
        combi_counts = self._combis.evaluate_pending_combis(conn, league_id, jornada, credit_winnings=False)

        # 2. balances from results not yet paid out
        members = self._member_repo.list_for_league(conn, league_id)
        bets, combis = self._unapplied_results(conn, league_id, jornada)
        balances = self._aggregate_balances([m.user_id for m in members], bets, combis)

        # 3. squad points; the lineup is only scored for the first settlement
        if not already_settled:
            for member in members:
                balances[member.user_id]["squadPoints"] = self._member_squad_points(
                    conn, league_id, member.user_id, jornada
                )

        # 4 + 5. budgets and squad clearing, once per (league, jornada)
        if already_settled:
            logger.warning(
                "League %s jornada %s already settled; applying %s late bet results to budgets only",
                league_id, jornada, len(bets) + len(combis),
            )
            updated_members = self._apply_late_results(conn, members, balances, bets, combis)
            cleared_squads = 0
        else:
            updated_members, cleared_squads = self._apply_settlement(
                conn, league_id, jornada, members, balances, bets, combis
            )

        # 6. purge
        deleted_bets = self._bet_repo.delete_settled(conn, league_id, jornada)
        self._combi_repo.delete_settled(conn, league_id, jornada)

        summary = {
            "leagueId": league_id,
            "jornada": jornada,
            "evaluations": evaluations,
            "evaluatedBets": sum(1 for e in evaluations if e["status"] != BetStatus.PENDING),
            "combis": combi_counts,
            "balances": balances,
            "updatedMembers": updated_members,
            "clearedSquads": cleared_squads,
            "deletedBets": deleted_bets,
            "alreadySettled": already_settled,
        }
        logger.info(
            "Reset of league %s jornada %s done: %s members updated, %s squads cleared, %s bets deleted",
            league_id, jornada, updated_members, cleared_squads, deleted_bets,
        )
        return summary

    def _member_squad_points(self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int) -> int:
        try:
            return self.squad_points(conn, league_id, user_id, jornada)
        except GatewayForbiddenError:
            raise
        except Exception:
            logger.exception("Squad points for %s in league %s failed, counting 0", user_id, league_id)
            return 0

    def _mark_applied(self, conn: sqlite3.Connection, bets: list[Bet], combis: list[BetCombi]) -> None:
        self._bet_repo.mark_settled_applied(conn, [b.id for b in bets], commit=False)
        self._combi_repo.mark_settled_applied(conn, [c.id for c in combis], commit=False)

    def _apply_settlement(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        jornada: int,
        members: list[LeagueMember],
        balances: dict[str, dict[str, Any]],
        bets: list[Bet],
        combis: list[BetCombi],
    ) -> tuple[int, int]:
        updated = 0
        cleared = 0
        try:
            for member in members:
                row = balances[member.user_id]
                squad_points = int(row["squadPoints"])
                per_jornada = dict(member.points_per_jornada)
                per_jornada[str(jornada)] = squad_points
                self._member_repo.apply_settlement(
                    conn, league_id, member.user_id,
                    budget=round_budget(member.budget + row["totalProfit"] + squad_points),
                    betting_budget=self._settings.betting_budget_reset,
                    points=member.points + squad_points,
                    points_per_jornada=per_jornada,
                    commit=False,
                )
                updated += 1
            for squad in self._squad_repo.list_for_league(conn, league_id):
                self._squad_repo.clear_players(conn, squad.id, commit=False)
                cleared += 1
            self._mark_applied(conn, bets, combis)
            self._settlement_repo.mark(
                conn, league_id, jornada,
                {"updatedMembers": updated, "clearedSquads": cleared},
                commit=False,
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return updated, cleared

    def _apply_late_results(
        self,
        conn: sqlite3.Connection,
        members: list[LeagueMember],
        balances: dict[str, dict[str, Any]],
        bets: list[Bet],
        combis: list[BetCombi],
    ) -> int:
        """Bets settled after the jornada closed: profit or loss goes to budget only."""
        settled_users = {b.user_id for b in bets} | {c.user_id for c in combis}
        updated = 0
        try:
            for member in members:
                if member.user_id not in settled_users:
                    continue
                profit = balances[member.user_id]["totalProfit"]
                self._member_repo.update_budget(
                    conn, member.league_id, member.user_id,
                    budget=round_budget(member.budget + profit),
                    commit=False,
                )
                updated += 1
            self._mark_applied(conn, bets, combis)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return updated

    def reset_all_leagues(self, conn: sqlite3.Connection, jornada: int) -> dict[str, Any]:
        """Reset every league in turn. A failing league is reported and skipped."""
        validate_jornada(jornada)
        results: list[dict[str, Any]] = []
        totals = {"evaluatedBets": 0, "updatedMembers": 0, "clearedSquads": 0, "deletedBets": 0}
        for league in self._league_repo.list_all(conn):
            try:
                summary = self.reset_jornada(conn, league.id, jornada)
            except AppError as e:
                logger.error("Reset of league %s jornada %s failed: %s", league.id, jornada, e.message)
                results.append({"leagueId": league.id, "success": False, "error": e.to_dict()})
                continue
            for key in totals:
                totals[key] += summary[key]
            results.append({"leagueId": league.id, "success": True, "summary": summary})
        return {"jornada": jornada, "leagues": len(results), "totals": totals, "results": results}

    def advance_jornada(self, conn: sqlite3.Connection, league_id: str) -> dict[str, Any]:
        """Settle the current jornada, move to the next one and reopen the league."""
        league = self._get_league(conn, league_id)
        validate_jornada(league.current_jornada)
        summary = self.reset_jornada(conn, league_id, league.current_jornada)
        next_jornada = min(league.current_jornada + 1, TOTAL_JORNADAS)
        self._league_repo.update_current_jornada(conn, league_id, next_jornada)
        self.unlock_jornada(conn, league_id)
        return {"summary": summary, **self.get_jornada_status(conn, league_id)}
