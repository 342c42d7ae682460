"""
Single-bet placement and edits.
Every mutation first checks the league is editable; amounts are reserved against
the member's betting budget while the bet is pending.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from dreamleague.betting.evaluator import potential_win
from dreamleague.config import Settings, get_settings
from dreamleague.errors import (
    ConflictError,
    ForbiddenError,
    JornadaLockedError,
    NotFoundError,
    ValidationError,
)
from dreamleague.models import Bet, BetStatus, League, LeagueMember
from dreamleague.persistence.repositories import (
    BetRepository,
    LeagueMemberRepository,
    LeagueRepository,
)

logger = logging.getLogger(__name__)


class BetService:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._league_repo = LeagueRepository()
        self._member_repo = LeagueMemberRepository()
        self._bet_repo = BetRepository()

    # ---------- guards ----------

    def assert_betting_allowed(self, conn: sqlite3.Connection, league_id: str) -> League:
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError(f"League not found: {league_id}")
        if league.is_locked:
            raise JornadaLockedError(league_id)
        return league

    def require_member(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> LeagueMember:
        member = self._member_repo.get(conn, league_id, user_id)
        if member is None:
            raise ForbiddenError("You are not a member of this league", code="NOT_A_MEMBER")
        return member

    def validate_amount(self, amount: int) -> None:
        if amount <= 0:
            raise ValidationError("Amount must be greater than 0", code="INVALID_AMOUNT")
        if amount > self._settings.max_bet_amount:
            raise ValidationError(
                f"Amount exceeds the maximum of {self._settings.max_bet_amount}",
                code="AMOUNT_ABOVE_LIMIT",
            )

    def available_budget(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> dict[str, int]:
        """Betting budget minus stakes of the member's pending bets this jornada."""
        league = self._league_repo.get(conn, league_id)
        if league is None:
            raise NotFoundError(f"League not found: {league_id}")
        member = self.require_member(conn, league_id, user_id)
        used = self._bet_repo.sum_pending_amount(conn, league_id, user_id, league.current_jornada)
        return {
            "total": member.betting_budget,
            "used": used,
            "available": member.betting_budget - used,
        }

    # ---------- operations ----------

    def place_bet(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        match_id: int,
        bet_type: str,
        bet_label: str,
        odd: float,
        amount: int,
    ) -> Bet:
        league = self.assert_betting_allowed(conn, league_id)
        self.require_member(conn, league_id, user_id)
        self.validate_amount(amount)
        if odd <= 1.0:
            raise ValidationError("Odd must be greater than 1", code="INVALID_ODD")
        if self._bet_repo.find_single_on_match(conn, league_id, user_id, league.current_jornada, match_id):
            raise ConflictError("You already have a bet on this match", code="DUPLICATE_BET")
        budget = self.available_budget(conn, league_id, user_id)
        if amount > budget["available"]:
            raise ValidationError(
                f"Insufficient betting budget. Available: {budget['available']}",
                code="INSUFFICIENT_BUDGET",
            )
        bet = self._bet_repo.create(
            conn,
            league_id=league_id,
            user_id=user_id,
            jornada=league.current_jornada,
            match_id=match_id,
            bet_type=bet_type,
            bet_label=bet_label,
            odd=odd,
            amount=amount,
            potential_win=potential_win(amount, odd),
        )
        logger.info("Bet %s placed: league=%s user=%s %s / %s x%s", bet.id, league_id, user_id, bet_type, bet_label, odd)
        return bet

    def _own_pending_bet(self, conn: sqlite3.Connection, league_id: str, user_id: str, bet_id: str) -> Bet:
        bet = self._bet_repo.get(conn, bet_id)
        if bet is None or bet.league_id != league_id:
            raise NotFoundError(f"Bet not found: {bet_id}")
        if bet.user_id != user_id:
            raise ForbiddenError("This bet belongs to another user")
        if bet.status != BetStatus.PENDING:
            raise ConflictError("Only pending bets can be changed", code="BET_NOT_PENDING")
        if bet.combi_id is not None:
            raise ConflictError("Combi selections are edited through their combi", code="BET_IN_COMBI")
        return bet

    def update_bet_amount(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, bet_id: str, amount: int
    ) -> Bet:
        self.assert_betting_allowed(conn, league_id)
        bet = self._own_pending_bet(conn, league_id, user_id, bet_id)
        self.validate_amount(amount)
        budget = self.available_budget(conn, league_id, user_id)
        if amount > budget["available"] + bet.amount:
            raise ValidationError(
                f"Insufficient betting budget. Available: {budget['available'] + bet.amount}",
                code="INSUFFICIENT_BUDGET",
            )
        self._bet_repo.update_amount(conn, bet_id, amount, potential_win(amount, bet.odd))
        updated = self._bet_repo.get(conn, bet_id)
        assert updated is not None
        return updated

    def delete_bet(self, conn: sqlite3.Connection, league_id: str, user_id: str, bet_id: str) -> None:
        self.assert_betting_allowed(conn, league_id)
        self._own_pending_bet(conn, league_id, user_id, bet_id)
        self._bet_repo.delete(conn, bet_id)

    def list_user_bets(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int | None = None
    ) -> list[dict[str, Any]]:
        self.require_member(conn, league_id, user_id)
        return [b.to_dict() for b in self._bet_repo.list_for_user(conn, league_id, user_id, jornada)]

    def reset_betting_budgets(self, conn: sqlite3.Connection, league_id: str) -> int:
        if self._league_repo.get(conn, league_id) is None:
            raise NotFoundError(f"League not found: {league_id}")
        return self._member_repo.reset_betting_budgets(conn, league_id, self._settings.betting_budget_reset)
