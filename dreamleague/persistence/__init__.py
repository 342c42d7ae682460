"""
Persistence layer for league, betting and player-stats data.
No business logic, only read/write interfaces.
"""
from .db import get_connection, get_db_path, init_db, set_db_path
from .repositories import (
    LeagueRepository,
    LeagueMemberRepository,
    PlayerRepository,
    SquadRepository,
    BetRepository,
    BetCombiRepository,
    PlayerStatsRepository,
    JornadaSettlementRepository,
)

__all__ = [
    "get_connection",
    "get_db_path",
    "init_db",
    "set_db_path",
    "LeagueRepository",
    "LeagueMemberRepository",
    "PlayerRepository",
    "SquadRepository",
    "BetRepository",
    "BetCombiRepository",
    "PlayerStatsRepository",
    "JornadaSettlementRepository",
]
