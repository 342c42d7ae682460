"""
Domain services: bets, combis, player stats and the jornada lifecycle.
Persistence is delegated to repositories; the football API is injected.
"""
from .bet_service import BetService
from .combi_service import CombiService
from .jornada_service import JornadaService
from .player_stats_service import PlayerStatsService

__all__ = [
    "BetService",
    "CombiService",
    "JornadaService",
    "PlayerStatsService",
]
