"""
Combis (parlays): construction while the league is editable, settlement once
every leg has been evaluated by the jornada pipeline.
The stake is taken from the betting budget when the combi is created; legs carry amount 0.
"""
from __future__ import annotations

import logging
import math
import sqlite3
from typing import Any

from dreamleague.betting.evaluator import potential_win
from dreamleague.config import Settings, get_settings
from dreamleague.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from dreamleague.models import BetCombi, BetStatus
from dreamleague.persistence.repositories import (
    BetCombiRepository,
    BetRepository,
    LeagueMemberRepository,
)
from dreamleague.services.bet_service import BetService

logger = logging.getLogger(__name__)

MIN_COMBI_SELECTIONS = 2


def combined_odd(odds: list[float]) -> float:
    return round(math.prod(odds), 4)


def combi_status(leg_statuses: list[str]) -> str:
    """lost if any leg lost, pending while any leg is pending or there are no legs, else won."""
    if not leg_statuses:
        return BetStatus.PENDING.value
    if any(s == BetStatus.LOST for s in leg_statuses):
        return BetStatus.LOST.value
    if any(s == BetStatus.PENDING for s in leg_statuses):
        return BetStatus.PENDING.value
    return BetStatus.WON.value


class CombiService:
    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._bets = BetService(self._settings)
        self._member_repo = LeagueMemberRepository()
        self._bet_repo = BetRepository()
        self._combi_repo = BetCombiRepository()

    # ---------- construction ----------

    def _validate_selection(self, selection: dict[str, Any]) -> None:
        if float(selection.get("odd") or 0) <= 1.0:
            raise ValidationError("Odd must be greater than 1", code="INVALID_ODD")
        if not selection.get("bet_type") or not selection.get("bet_label"):
            raise ValidationError("Each selection needs bet_type and bet_label", code="INVALID_SELECTION")

    def create_combi(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        selections: list[dict[str, Any]],
        amount: int,
    ) -> BetCombi:
        league = self._bets.assert_betting_allowed(conn, league_id)
        member = self._bets.require_member(conn, league_id, user_id)
        if len(selections) < MIN_COMBI_SELECTIONS:
            raise ValidationError(
                f"A combi needs at least {MIN_COMBI_SELECTIONS} selections",
                code="COMBI_TOO_FEW_SELECTIONS",
            )
        if len(selections) > self._settings.max_combi_selections:
            raise ValidationError(
                f"A combi cannot have more than {self._settings.max_combi_selections} selections",
                code="COMBI_TOO_MANY_SELECTIONS",
            )
        match_ids = [int(s["match_id"]) for s in selections]
        if len(set(match_ids)) != len(match_ids):
            raise ValidationError("Only one selection per match is allowed", code="COMBI_DUPLICATE_MATCH")
        for s in selections:
            self._validate_selection(s)
        self._bets.validate_amount(amount)
        if member.betting_budget < amount:
            raise ValidationError(
                f"Insufficient betting budget. Available: {member.betting_budget}",
                code="INSUFFICIENT_BUDGET",
            )

        total_odd = combined_odd([float(s["odd"]) for s in selections])
        try:
            combi_id = self._combi_repo.create(
                conn, league_id, user_id, league.current_jornada,
                total_odd=total_odd, amount=amount,
                potential_win=potential_win(amount, total_odd), commit=False,
            )
            for s in selections:
                self._bet_repo.create(
                    conn, league_id, user_id, league.current_jornada,
                    match_id=int(s["match_id"]), bet_type=s["bet_type"], bet_label=s["bet_label"],
                    odd=float(s["odd"]), amount=0, potential_win=0,
                    combi_id=combi_id, commit=False,
                )
            self._member_repo.adjust_betting_budget(conn, league_id, user_id, -amount, commit=False)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        logger.info(
            "Combi %s created: league=%s user=%s legs=%s odd=%.2f amount=%s",
            combi_id, league_id, user_id, len(selections), total_odd, amount,
        )
        return self._get(conn, combi_id)

    def _get(self, conn: sqlite3.Connection, combi_id: str) -> BetCombi:
        combi = self._combi_repo.get(conn, combi_id)
        if combi is None:
            raise NotFoundError(f"Combi not found: {combi_id}")
        return combi

    def _editable_combi(self, conn: sqlite3.Connection, combi_id: str, user_id: str) -> BetCombi:
        combi = self._get(conn, combi_id)
        if combi.user_id != user_id:
            raise ForbiddenError("This combi belongs to another user")
        if combi.status != BetStatus.PENDING:
            raise ConflictError("A combi that has been evaluated cannot be modified", code="BET_NOT_PENDING")
        self._bets.assert_betting_allowed(conn, combi.league_id)
        return combi

    def add_selection(
        self, conn: sqlite3.Connection, combi_id: str, user_id: str, selection: dict[str, Any]
    ) -> BetCombi:
        combi = self._editable_combi(conn, combi_id, user_id)
        if len(combi.selections) >= self._settings.max_combi_selections:
            raise ValidationError(
                f"A combi cannot have more than {self._settings.max_combi_selections} selections",
                code="COMBI_TOO_MANY_SELECTIONS",
            )
        match_id = int(selection["match_id"])
        if any(leg.match_id == match_id for leg in combi.selections):
            raise ValidationError("This combi already has a selection for that match", code="COMBI_DUPLICATE_MATCH")
        self._validate_selection(selection)

        total_odd = combined_odd([leg.odd for leg in combi.selections] + [float(selection["odd"])])
        try:
            self._bet_repo.create(
                conn, combi.league_id, combi.user_id, combi.jornada,
                match_id=match_id, bet_type=selection["bet_type"], bet_label=selection["bet_label"],
                odd=float(selection["odd"]), amount=0, potential_win=0,
                combi_id=combi_id, commit=False,
            )
            self._combi_repo.update_odds(
                conn, combi_id, total_odd, potential_win(combi.amount, total_odd), commit=False
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return self._get(conn, combi_id)

    def remove_selection(
        self, conn: sqlite3.Connection, combi_id: str, user_id: str, bet_id: str
    ) -> BetCombi | None:
        """
        Remove one leg. A combi left with fewer than two legs is deleted whole and
        its stake refunded; returns None in that case.
        """
        combi = self._editable_combi(conn, combi_id, user_id)
        if not any(leg.id == bet_id for leg in combi.selections):
            raise NotFoundError("The bet does not belong to this combi")

        try:
            if len(combi.selections) <= MIN_COMBI_SELECTIONS:
                self._combi_repo.delete(conn, combi_id, commit=False)
                self._member_repo.adjust_betting_budget(
                    conn, combi.league_id, combi.user_id, combi.amount, commit=False
                )
                conn.commit()
                logger.info("Combi %s deleted, %s refunded to %s", combi_id, combi.amount, combi.user_id)
                return None
            remaining = [leg.odd for leg in combi.selections if leg.id != bet_id]
            total_odd = combined_odd(remaining)
            self._bet_repo.delete(conn, bet_id, commit=False)
            self._combi_repo.update_odds(
                conn, combi_id, total_odd, potential_win(combi.amount, total_odd), commit=False
            )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        return self._get(conn, combi_id)

    def list_user_combis(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> list[dict[str, Any]]:
        self._bets.require_member(conn, league_id, user_id)
        return [c.to_dict() for c in self._combi_repo.list_for_user(conn, league_id, user_id)]

    # ---------- settlement ----------

    def evaluate_combi(self, conn: sqlite3.Connection, combi_id: str, credit_winnings: bool = True) -> BetCombi:
        """
        Settle a combi from its legs' stored statuses.
        A combi that is no longer pending is returned unchanged; the winnings are
        credited only by the call that moves it from pending to won. The jornada
        reset passes credit_winnings=False and books the result in the budget instead.
        """
        combi = self._get(conn, combi_id)
        if combi.status != BetStatus.PENDING:
            return combi
        status = combi_status([leg.status for leg in combi.selections])
        if status == BetStatus.PENDING:
            logger.info("Combi %s still has pending selections", combi_id)
            return combi

        try:
            moved = self._combi_repo.set_status_if_pending(conn, combi_id, status, commit=False)
            if moved and credit_winnings and status == BetStatus.WON:
                self._member_repo.adjust_betting_budget(
                    conn, combi.league_id, combi.user_id, combi.potential_win, commit=False
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        if moved:
            logger.info("Combi %s settled as %s (potential win %s)", combi_id, status, combi.potential_win)
        return self._get(conn, combi_id)

    def evaluate_pending_combis(
        self, conn: sqlite3.Connection, league_id: str, jornada: int, credit_winnings: bool = True
    ) -> dict[str, int]:
        pending = self._combi_repo.list_pending(conn, league_id, jornada)
        counts = {"won": 0, "lost": 0, "pending": 0, "total": len(pending)}
        for combi in pending:
            result = self.evaluate_combi(conn, combi.id, credit_winnings=credit_winnings)
            counts[result.status] += 1
        return counts
