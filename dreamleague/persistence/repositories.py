"""
Repository interfaces for league, betting and player-stats data.
No business logic, only read/write operations.
Writes commit immediately unless commit=False is passed (caller owns the transaction).
"""
from __future__ import annotations

import json
import secrets
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any

from dreamleague.models import (
    Bet,
    BetCombi,
    BetStatus,
    JornadaStatus,
    League,
    LeagueMember,
    Player,
    PlayerStats,
    Squad,
    SquadPlayer,
    empty_points_per_jornada,
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


# ---------- LeagueRepository ----------


class LeagueRepository:
    """CRUD for leagues. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        leader_id: str,
        code: str | None = None,
        current_jornada: int = 1,
        jornada_status: str = JornadaStatus.EDITABLE,
        id: str | None = None,
    ) -> League:
        lid = id or str(uuid.uuid4())
        join_code = code or secrets.token_hex(3).upper()
        conn.execute(
            """INSERT INTO leagues (id, name, code, leader_id, current_jornada, jornada_status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (lid, name, join_code, leader_id, current_jornada, JornadaStatus(jornada_status).value, _now()),
        )
        conn.commit()
        league = self.get(conn, lid)
        assert league is not None
        return league

    def get(self, conn: sqlite3.Connection, league_id: str) -> League | None:
        row = conn.execute("SELECT * FROM leagues WHERE id = ?", (league_id,)).fetchone()
        return self._row_to_league(row) if row else None

    def list_all(self, conn: sqlite3.Connection) -> list[League]:
        rows = conn.execute("SELECT * FROM leagues ORDER BY created_at").fetchall()
        return [self._row_to_league(r) for r in rows]

    def update_jornada_status(self, conn: sqlite3.Connection, league_id: str, status: str) -> None:
        conn.execute(
            "UPDATE leagues SET jornada_status = ? WHERE id = ?",
            (JornadaStatus(status).value, league_id),
        )
        conn.commit()

    def update_current_jornada(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> None:
        conn.execute("UPDATE leagues SET current_jornada = ? WHERE id = ?", (jornada, league_id))
        conn.commit()

    def _row_to_league(self, row: sqlite3.Row) -> League:
        return League(
            id=row["id"],
            name=row["name"],
            code=row["code"],
            leader_id=row["leader_id"],
            current_jornada=row["current_jornada"],
            jornada_status=row["jornada_status"],
            created_at=_parse_datetime(row["created_at"]),
        )


# ---------- LeagueMemberRepository ----------


class LeagueMemberRepository:
    """Membership rows carry the member's wallet (budget, betting budget) and points."""

    def add(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        budget: int = 500,
        betting_budget: int = 250,
    ) -> LeagueMember:
        conn.execute(
            """INSERT INTO league_members
               (league_id, user_id, points, budget, initial_budget, betting_budget, points_per_jornada, joined_at)
               VALUES (?, ?, 0, ?, ?, ?, ?, ?)""",
            (league_id, user_id, budget, budget, betting_budget, json.dumps(empty_points_per_jornada()), _now()),
        )
        conn.commit()
        member = self.get(conn, league_id, user_id)
        assert member is not None
        return member

    def get(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> LeagueMember | None:
        row = conn.execute(
            "SELECT * FROM league_members WHERE league_id = ? AND user_id = ?",
            (league_id, user_id),
        ).fetchone()
        return self._row_to_member(row) if row else None

    def list_for_league(self, conn: sqlite3.Connection, league_id: str) -> list[LeagueMember]:
        rows = conn.execute(
            "SELECT * FROM league_members WHERE league_id = ? ORDER BY joined_at",
            (league_id,),
        ).fetchall()
        return [self._row_to_member(r) for r in rows]

    def apply_settlement(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        budget: int,
        betting_budget: int,
        points: int,
        points_per_jornada: dict[str, int],
        commit: bool = True,
    ) -> None:
        """Jornada close: budget and initial_budget both become the new budget."""
        conn.execute(
            """UPDATE league_members
               SET budget = ?, initial_budget = ?, betting_budget = ?, points = ?, points_per_jornada = ?
               WHERE league_id = ? AND user_id = ?""",
            (budget, budget, betting_budget, points, json.dumps(points_per_jornada), league_id, user_id),
        )
        if commit:
            conn.commit()

    def update_budget(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, budget: int, commit: bool = True
    ) -> None:
        """Late payout after the jornada closed: budget and initial_budget only."""
        conn.execute(
            "UPDATE league_members SET budget = ?, initial_budget = ? WHERE league_id = ? AND user_id = ?",
            (budget, budget, league_id, user_id),
        )
        if commit:
            conn.commit()

    def adjust_betting_budget(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, delta: int, commit: bool = True
    ) -> None:
        conn.execute(
            "UPDATE league_members SET betting_budget = betting_budget + ? WHERE league_id = ? AND user_id = ?",
            (delta, league_id, user_id),
        )
        if commit:
            conn.commit()

    def reset_betting_budgets(self, conn: sqlite3.Connection, league_id: str, value: int) -> int:
        cur = conn.execute(
            "UPDATE league_members SET betting_budget = ? WHERE league_id = ?",
            (value, league_id),
        )
        conn.commit()
        return cur.rowcount

    def _row_to_member(self, row: sqlite3.Row) -> LeagueMember:
        per_jornada = empty_points_per_jornada()
        per_jornada.update(json.loads(row["points_per_jornada"] or "{}"))
        return LeagueMember(
            league_id=row["league_id"],
            user_id=row["user_id"],
            points=row["points"],
            budget=row["budget"],
            initial_budget=row["initial_budget"],
            betting_budget=row["betting_budget"],
            points_per_jornada=per_jornada,
        )


# ---------- PlayerRepository ----------


class PlayerRepository:
    """Player catalogue. Upserts never overwrite a curated price."""

    def upsert(
        self,
        conn: sqlite3.Connection,
        id: int,
        name: str,
        position: str,
        team_id: int | None = None,
        team_name: str | None = None,
        price: int = 0,
    ) -> Player:
        conn.execute(
            """INSERT INTO players (id, name, position, team_id, team_name, price)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   name = excluded.name,
                   position = excluded.position,
                   team_id = excluded.team_id,
                   team_name = excluded.team_name""",
            (id, name, position, team_id, team_name, price),
        )
        conn.commit()
        player = self.get(conn, id)
        assert player is not None
        return player

    def get(self, conn: sqlite3.Connection, player_id: int) -> Player | None:
        row = conn.execute("SELECT * FROM players WHERE id = ?", (player_id,)).fetchone()
        return self._row_to_player(row) if row else None

    def list_all(self, conn: sqlite3.Connection) -> list[Player]:
        rows = conn.execute("SELECT * FROM players ORDER BY id").fetchall()
        return [self._row_to_player(r) for r in rows]

    def update_last_jornada_points(
        self, conn: sqlite3.Connection, player_id: int, points: int, jornada: int
    ) -> None:
        conn.execute(
            "UPDATE players SET last_jornada_points = ?, last_jornada_number = ? WHERE id = ?",
            (points, jornada, player_id),
        )
        conn.commit()

    def _row_to_player(self, row: sqlite3.Row) -> Player:
        return Player(
            id=row["id"],
            name=row["name"],
            position=row["position"],
            team_id=row["team_id"],
            team_name=row["team_name"],
            price=row["price"],
            last_jornada_points=row["last_jornada_points"],
            last_jornada_number=row["last_jornada_number"],
        )


# ---------- SquadRepository ----------


class SquadRepository:
    """Squads and their lineup rows."""

    def create(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        league_id: str,
        formation: str = "4-4-2",
        captain_position: str | None = None,
        id: str | None = None,
    ) -> Squad:
        sid = id or str(uuid.uuid4())
        conn.execute(
            """INSERT INTO squads (id, user_id, league_id, formation, captain_position, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (sid, user_id, league_id, formation, captain_position, _now()),
        )
        conn.commit()
        squad = self.get(conn, sid)
        assert squad is not None
        return squad

    def get(self, conn: sqlite3.Connection, squad_id: str) -> Squad | None:
        row = conn.execute("SELECT * FROM squads WHERE id = ?", (squad_id,)).fetchone()
        return self._row_to_squad(conn, row) if row else None

    def get_for_user(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> Squad | None:
        row = conn.execute(
            "SELECT * FROM squads WHERE league_id = ? AND user_id = ?",
            (league_id, user_id),
        ).fetchone()
        return self._row_to_squad(conn, row) if row else None

    def list_for_league(self, conn: sqlite3.Connection, league_id: str) -> list[Squad]:
        rows = conn.execute("SELECT * FROM squads WHERE league_id = ?", (league_id,)).fetchall()
        return [self._row_to_squad(conn, r) for r in rows]

    def add_player(
        self,
        conn: sqlite3.Connection,
        squad_id: str,
        position: str,
        player_id: int,
        role: str,
        price_paid: int = 0,
    ) -> None:
        conn.execute(
            """INSERT OR REPLACE INTO squad_players (squad_id, position, player_id, role, price_paid)
               VALUES (?, ?, ?, ?, ?)""",
            (squad_id, position, player_id, role, price_paid),
        )
        conn.commit()

    def list_players(self, conn: sqlite3.Connection, squad_id: str) -> list[SquadPlayer]:
        rows = conn.execute(
            "SELECT * FROM squad_players WHERE squad_id = ? ORDER BY position",
            (squad_id,),
        ).fetchall()
        return [
            SquadPlayer(
                squad_id=r["squad_id"],
                position=r["position"],
                player_id=r["player_id"],
                role=r["role"],
                price_paid=r["price_paid"],
            )
            for r in rows
        ]

    def clear_players(self, conn: sqlite3.Connection, squad_id: str, commit: bool = True) -> int:
        """Delete every lineup row of the squad. Returns rows deleted."""
        cur = conn.execute("DELETE FROM squad_players WHERE squad_id = ?", (squad_id,))
        if commit:
            conn.commit()
        return cur.rowcount

    def _row_to_squad(self, conn: sqlite3.Connection, row: sqlite3.Row) -> Squad:
        return Squad(
            id=row["id"],
            user_id=row["user_id"],
            league_id=row["league_id"],
            formation=row["formation"],
            captain_position=row["captain_position"],
            players=self.list_players(conn, row["id"]),
        )


# ---------- BetRepository ----------


class BetRepository:
    """Single bets and combi legs."""

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        jornada: int,
        match_id: int,
        bet_type: str,
        bet_label: str,
        odd: float,
        amount: int,
        potential_win: int,
        combi_id: str | None = None,
        id: str | None = None,
        commit: bool = True,
    ) -> Bet:
        bid = id or str(uuid.uuid4())
        conn.execute(
            """INSERT INTO bets (id, league_id, user_id, jornada, match_id, bet_type, bet_label,
                                 odd, amount, potential_win, status, created_at, combi_id)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                bid, league_id, user_id, jornada, match_id, bet_type, bet_label,
                odd, amount, potential_win, BetStatus.PENDING.value, _now(), combi_id,
            ),
        )
        if commit:
            conn.commit()
        bet = self.get(conn, bid)
        assert bet is not None
        return bet

    def get(self, conn: sqlite3.Connection, bet_id: str) -> Bet | None:
        row = conn.execute("SELECT * FROM bets WHERE id = ?", (bet_id,)).fetchone()
        return self._row_to_bet(row) if row else None

    def list_pending_for_league(
        self, conn: sqlite3.Connection, league_id: str, jornada: int | None = None
    ) -> list[Bet]:
        sql = "SELECT * FROM bets WHERE league_id = ? AND status = ?"
        args: tuple = (league_id, BetStatus.PENDING.value)
        if jornada is not None:
            sql += " AND jornada = ?"
            args = args + (jornada,)
        rows = conn.execute(sql + " ORDER BY match_id, created_at", args).fetchall()
        return [self._row_to_bet(r) for r in rows]

    def list_for_league_jornada(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> list[Bet]:
        rows = conn.execute(
            "SELECT * FROM bets WHERE league_id = ? AND jornada = ? ORDER BY match_id, created_at",
            (league_id, jornada),
        ).fetchall()
        return [self._row_to_bet(r) for r in rows]

    def list_for_user(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int | None = None
    ) -> list[Bet]:
        sql = "SELECT * FROM bets WHERE league_id = ? AND user_id = ?"
        args: tuple = (league_id, user_id)
        if jornada is not None:
            sql += " AND jornada = ?"
            args = args + (jornada,)
        rows = conn.execute(sql + " ORDER BY created_at", args).fetchall()
        return [self._row_to_bet(r) for r in rows]

    def list_for_combi(self, conn: sqlite3.Connection, combi_id: str) -> list[Bet]:
        rows = conn.execute(
            "SELECT * FROM bets WHERE combi_id = ? ORDER BY created_at",
            (combi_id,),
        ).fetchall()
        return [self._row_to_bet(r) for r in rows]

    def find_single_on_match(
        self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int, match_id: int
    ) -> Bet | None:
        """Existing single (non-combi) bet by the user on the match this jornada."""
        row = conn.execute(
            """SELECT * FROM bets
               WHERE league_id = ? AND user_id = ? AND jornada = ? AND match_id = ?
                 AND combi_id IS NULL""",
            (league_id, user_id, jornada, match_id),
        ).fetchone()
        return self._row_to_bet(row) if row else None

    def sum_pending_amount(self, conn: sqlite3.Connection, league_id: str, user_id: str, jornada: int) -> int:
        row = conn.execute(
            """SELECT COALESCE(SUM(amount), 0) AS total FROM bets
               WHERE league_id = ? AND user_id = ? AND jornada = ? AND status = ?""",
            (league_id, user_id, jornada, BetStatus.PENDING.value),
        ).fetchone()
        return int(row["total"])

    def update_status(self, conn: sqlite3.Connection, bet_id: str, status: str) -> None:
        conn.execute("UPDATE bets SET status = ? WHERE id = ?", (BetStatus(status).value, bet_id))
        conn.commit()

    def update_amount(self, conn: sqlite3.Connection, bet_id: str, amount: int, potential_win: int) -> None:
        conn.execute(
            "UPDATE bets SET amount = ?, potential_win = ? WHERE id = ?",
            (amount, potential_win, bet_id),
        )
        conn.commit()

    def mark_settled_applied(self, conn: sqlite3.Connection, bet_ids: list[str], commit: bool = True) -> None:
        conn.executemany("UPDATE bets SET settled_applied = 1 WHERE id = ?", [(bid,) for bid in bet_ids])
        if commit:
            conn.commit()

    def delete(self, conn: sqlite3.Connection, bet_id: str, commit: bool = True) -> None:
        conn.execute("DELETE FROM bets WHERE id = ?", (bet_id,))
        if commit:
            conn.commit()

    def delete_settled(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> int:
        """
        Delete won/lost bets of the league's jornada. Pending bets stay, and so do
        settled legs of a combi that is still pending.
        """
        cur = conn.execute(
            """DELETE FROM bets
               WHERE league_id = ? AND jornada = ? AND status IN (?, ?)
                 AND (combi_id IS NULL
                      OR combi_id NOT IN (SELECT id FROM bet_combis WHERE status = ?))""",
            (league_id, jornada, BetStatus.WON.value, BetStatus.LOST.value, BetStatus.PENDING.value),
        )
        conn.commit()
        return cur.rowcount

    def _row_to_bet(self, row: sqlite3.Row) -> Bet:
        return Bet(
            id=row["id"],
            league_id=row["league_id"],
            user_id=row["user_id"],
            jornada=row["jornada"],
            match_id=row["match_id"],
            bet_type=row["bet_type"],
            bet_label=row["bet_label"],
            odd=row["odd"],
            amount=row["amount"],
            potential_win=row["potential_win"],
            status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
            combi_id=row["combi_id"],
            settled_applied=bool(row["settled_applied"]),
        )


# ---------- BetCombiRepository ----------


class BetCombiRepository:
    """Parlays. Legs live in bets with combi_id set."""

    def __init__(self) -> None:
        self._bets = BetRepository()

    def create(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        user_id: str,
        jornada: int,
        total_odd: float,
        amount: int,
        potential_win: int,
        id: str | None = None,
        commit: bool = True,
    ) -> str:
        cid = id or str(uuid.uuid4())
        conn.execute(
            """INSERT INTO bet_combis (id, league_id, user_id, jornada, total_odd, amount,
                                       potential_win, status, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (cid, league_id, user_id, jornada, total_odd, amount, potential_win, BetStatus.PENDING.value, _now()),
        )
        if commit:
            conn.commit()
        return cid

    def get(self, conn: sqlite3.Connection, combi_id: str) -> BetCombi | None:
        row = conn.execute("SELECT * FROM bet_combis WHERE id = ?", (combi_id,)).fetchone()
        return self._row_to_combi(conn, row) if row else None

    def list_pending(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> list[BetCombi]:
        rows = conn.execute(
            "SELECT * FROM bet_combis WHERE league_id = ? AND jornada = ? AND status = ? ORDER BY created_at",
            (league_id, jornada, BetStatus.PENDING.value),
        ).fetchall()
        return [self._row_to_combi(conn, r) for r in rows]

    def list_for_league_jornada(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> list[BetCombi]:
        rows = conn.execute(
            "SELECT * FROM bet_combis WHERE league_id = ? AND jornada = ? ORDER BY created_at",
            (league_id, jornada),
        ).fetchall()
        return [self._row_to_combi(conn, r) for r in rows]

    def list_for_user(self, conn: sqlite3.Connection, league_id: str, user_id: str) -> list[BetCombi]:
        rows = conn.execute(
            "SELECT * FROM bet_combis WHERE league_id = ? AND user_id = ? ORDER BY created_at",
            (league_id, user_id),
        ).fetchall()
        return [self._row_to_combi(conn, r) for r in rows]

    def update_odds(
        self, conn: sqlite3.Connection, combi_id: str, total_odd: float, potential_win: int, commit: bool = True
    ) -> None:
        conn.execute(
            "UPDATE bet_combis SET total_odd = ?, potential_win = ? WHERE id = ?",
            (total_odd, potential_win, combi_id),
        )
        if commit:
            conn.commit()

    def set_status_if_pending(
        self, conn: sqlite3.Connection, combi_id: str, status: str, commit: bool = True
    ) -> bool:
        """Move a pending combi to status. False if it was already settled."""
        cur = conn.execute(
            "UPDATE bet_combis SET status = ? WHERE id = ? AND status = ?",
            (BetStatus(status).value, combi_id, BetStatus.PENDING.value),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1

    def mark_settled_applied(self, conn: sqlite3.Connection, combi_ids: list[str], commit: bool = True) -> None:
        conn.executemany("UPDATE bet_combis SET settled_applied = 1 WHERE id = ?", [(cid,) for cid in combi_ids])
        if commit:
            conn.commit()

    def delete(self, conn: sqlite3.Connection, combi_id: str, commit: bool = True) -> None:
        """Delete the combi and all of its legs."""
        conn.execute("DELETE FROM bets WHERE combi_id = ?", (combi_id,))
        conn.execute("DELETE FROM bet_combis WHERE id = ?", (combi_id,))
        if commit:
            conn.commit()

    def delete_settled(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> int:
        cur = conn.execute(
            "DELETE FROM bet_combis WHERE league_id = ? AND jornada = ? AND status IN (?, ?)",
            (league_id, jornada, BetStatus.WON.value, BetStatus.LOST.value),
        )
        conn.commit()
        return cur.rowcount

    def _row_to_combi(self, conn: sqlite3.Connection, row: sqlite3.Row) -> BetCombi:
        return BetCombi(
            id=row["id"],
            league_id=row["league_id"],
            user_id=row["user_id"],
            jornada=row["jornada"],
            total_odd=row["total_odd"],
            amount=row["amount"],
            potential_win=row["potential_win"],
            status=row["status"],
            created_at=_parse_datetime(row["created_at"]),
            selections=self._bets.list_for_combi(conn, row["id"]),
            settled_applied=bool(row["settled_applied"]),
        )


# ---------- PlayerStatsRepository ----------


class PlayerStatsRepository:
    """Durable cache of per-jornada player stats and points."""

    def get(self, conn: sqlite3.Connection, player_id: int, jornada: int, season: int) -> PlayerStats | None:
        row = conn.execute(
            "SELECT * FROM player_stats WHERE player_id = ? AND jornada = ? AND season = ?",
            (player_id, jornada, season),
        ).fetchone()
        return self._row_to_stats(row) if row else None

    def list_for_player(
        self, conn: sqlite3.Connection, player_id: int, season: int, jornadas: list[int] | None = None
    ) -> list[PlayerStats]:
        sql = "SELECT * FROM player_stats WHERE player_id = ? AND season = ?"
        args: tuple = (player_id, season)
        if jornadas:
            sql += f" AND jornada IN ({', '.join('?' for _ in jornadas)})"
            args = args + tuple(jornadas)
        rows = conn.execute(sql + " ORDER BY jornada", args).fetchall()
        return [self._row_to_stats(r) for r in rows]

    def upsert(
        self,
        conn: sqlite3.Connection,
        player_id: int,
        jornada: int,
        season: int,
        fixture_id: int,
        team_id: int | None,
        total_points: int,
        points_breakdown: list[dict[str, Any]],
        stats: dict[str, Any],
    ) -> PlayerStats:
        conn.execute(
            """INSERT INTO player_stats
               (player_id, jornada, season, fixture_id, team_id, minutes, rating,
                total_points, points_breakdown, stats, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(player_id, jornada, season) DO UPDATE SET
                   fixture_id = excluded.fixture_id,
                   team_id = excluded.team_id,
                   minutes = excluded.minutes,
                   rating = excluded.rating,
                   total_points = excluded.total_points,
                   points_breakdown = excluded.points_breakdown,
                   stats = excluded.stats,
                   updated_at = excluded.updated_at""",
            (
                player_id, jornada, season, fixture_id, team_id,
                int(stats.get("minutes") or 0), stats.get("rating"),
                total_points, json.dumps(points_breakdown), json.dumps(stats), _now(),
            ),
        )
        conn.commit()
        record = self.get(conn, player_id, jornada, season)
        assert record is not None
        return record

    def _row_to_stats(self, row: sqlite3.Row) -> PlayerStats:
        return PlayerStats(
            player_id=row["player_id"],
            jornada=row["jornada"],
            season=row["season"],
            fixture_id=row["fixture_id"],
            team_id=row["team_id"],
            total_points=row["total_points"],
            points_breakdown=json.loads(row["points_breakdown"] or "[]"),
            stats=json.loads(row["stats"] or "{}"),
            updated_at=_parse_datetime(row["updated_at"]),
        )


# ---------- JornadaSettlementRepository ----------


class JornadaSettlementRepository:
    """Marks (league, jornada) pairs whose budgets were already applied."""

    def get(self, conn: sqlite3.Connection, league_id: str, jornada: int) -> dict[str, Any] | None:
        row = conn.execute(
            "SELECT * FROM jornada_settlements WHERE league_id = ? AND jornada = ?",
            (league_id, jornada),
        ).fetchone()
        if row is None:
            return None
        return {
            "league_id": row["league_id"],
            "jornada": row["jornada"],
            "settled_at": row["settled_at"],
            "summary": json.loads(row["summary"] or "{}"),
        }

    def mark(
        self,
        conn: sqlite3.Connection,
        league_id: str,
        jornada: int,
        summary: dict[str, Any],
        commit: bool = True,
    ) -> bool:
        """Insert the marker. False if the pair was already settled."""
        cur = conn.execute(
            "INSERT OR IGNORE INTO jornada_settlements (league_id, jornada, settled_at, summary) VALUES (?, ?, ?, ?)",
            (league_id, jornada, _now(), json.dumps(summary)),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1
