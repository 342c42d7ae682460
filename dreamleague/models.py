"""
Data models for the DreamLeague backend.
Domain objects only; no persistence or API logic.

Leagues follow a real competition jornada by jornada; members bet on fixtures
and field squads whose players score fantasy points from real match stats.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

TOTAL_JORNADAS = 38


# ---------- Jornada status (lock state machine) ----------
class JornadaStatus(str, Enum):
    """Per-league lock: editable ⇄ locked."""
    EDITABLE = "editable"  # Bets and squad changes allowed
    LOCKED = "locked"  # Matchday in progress, no mutations


# ---------- Bet / combi status ----------
class BetStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"


def empty_points_per_jornada() -> dict[str, int]:
    return {str(j): 0 for j in range(1, TOTAL_JORNADAS + 1)}


# ---------- League ----------
@dataclass
class League:
    """
    Private competition following the real league calendar.
    current_jornada advances only through the jornada pipeline.
    """
    id: str
    name: str
    code: str
    leader_id: str
    current_jornada: int
    jornada_status: str  # JornadaStatus value
    created_at: datetime

    @property
    def is_locked(self) -> bool:
        return self.jornada_status == JornadaStatus.LOCKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "leader_id": self.leader_id,
            "current_jornada": self.current_jornada,
            "jornada_status": self.jornada_status,
            "created_at": self.created_at.isoformat(),
        }


# ---------- LeagueMember (join: league_id, user_id) ----------
@dataclass
class LeagueMember:
    """
    One user's wallet and score inside a league.
    budget/initial_budget: squad market money, carried across jornadas.
    betting_budget: per-jornada wager allowance, reset at every settlement.
    """
    league_id: str
    user_id: str
    points: int
    budget: int
    initial_budget: int
    betting_budget: int
    points_per_jornada: dict[str, int] = field(default_factory=empty_points_per_jornada)

    def to_dict(self) -> dict[str, Any]:
        return {
            "league_id": self.league_id,
            "user_id": self.user_id,
            "points": self.points,
            "budget": self.budget,
            "initial_budget": self.initial_budget,
            "betting_budget": self.betting_budget,
            "points_per_jornada": dict(self.points_per_jornada),
        }


# ---------- Player ----------
@dataclass
class Player:
    """
    Real footballer, id is the football API id.
    price is curated by hand; stats refresh only touches last_jornada_*.
    """
    id: int
    name: str
    position: str  # Role value
    team_id: int | None
    team_name: str | None
    price: int
    last_jornada_points: int = 0
    last_jornada_number: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "position": self.position,
            "team_id": self.team_id,
            "team_name": self.team_name,
            "price": self.price,
            "last_jornada_points": self.last_jornada_points,
            "last_jornada_number": self.last_jornada_number,
        }


# ---------- Squad ----------
@dataclass
class SquadPlayer:
    squad_id: str
    position: str  # lineup slot, e.g. "GK", "DEF1"
    player_id: int
    role: str
    price_paid: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "squad_id": self.squad_id,
            "position": self.position,
            "player_id": self.player_id,
            "role": self.role,
            "price_paid": self.price_paid,
        }


@dataclass
class Squad:
    """A member's lineup for one league. Only scores with at least 11 players."""
    id: str
    user_id: str
    league_id: str
    formation: str
    captain_position: str | None
    players: list[SquadPlayer] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "league_id": self.league_id,
            "formation": self.formation,
            "captain_position": self.captain_position,
            "players": [p.to_dict() for p in self.players],
        }


# ---------- Bet ----------
@dataclass
class Bet:
    """
    Single wager on a fixture. bet_label is the human-readable pick shown in the app
    and parsed at evaluation time. Combi legs carry amount 0 and a combi_id.
    """
    id: str
    league_id: str
    user_id: str
    jornada: int
    match_id: int
    bet_type: str
    bet_label: str
    odd: float
    amount: int
    potential_win: int
    status: str  # BetStatus value
    created_at: datetime
    combi_id: str | None = None
    settled_applied: bool = False  # settled result already moved into the member budget

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "league_id": self.league_id,
            "user_id": self.user_id,
            "jornada": self.jornada,
            "match_id": self.match_id,
            "bet_type": self.bet_type,
            "bet_label": self.bet_label,
            "odd": self.odd,
            "amount": self.amount,
            "potential_win": self.potential_win,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }
        if self.combi_id is not None:
            d["combi_id"] = self.combi_id
        return d


# ---------- BetCombi (parlay) ----------
@dataclass
class BetCombi:
    id: str
    league_id: str
    user_id: str
    jornada: int
    total_odd: float
    amount: int
    potential_win: int
    status: str  # BetStatus value
    created_at: datetime
    selections: list[Bet] = field(default_factory=list)
    settled_applied: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "league_id": self.league_id,
            "user_id": self.user_id,
            "jornada": self.jornada,
            "total_odd": self.total_odd,
            "amount": self.amount,
            "potential_win": self.potential_win,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
            "selections": [b.to_dict() for b in self.selections],
        }


# ---------- PlayerStats (cached per player / jornada / season) ----------
@dataclass
class PlayerStats:
    """
    Raw match stats plus computed points for one player in one jornada.
    fixture_id 0 means the player did not appear that jornada.
    """
    player_id: int
    jornada: int
    season: int
    fixture_id: int
    team_id: int | None
    total_points: int
    points_breakdown: list[dict[str, Any]]
    stats: dict[str, Any]
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "jornada": self.jornada,
            "season": self.season,
            "fixture_id": self.fixture_id,
            "team_id": self.team_id,
            "total_points": self.total_points,
            "points_breakdown": list(self.points_breakdown),
            "stats": dict(self.stats),
            "updated_at": self.updated_at.isoformat(),
        }
