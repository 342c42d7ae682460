"""
Bet label parsing and outcome evaluation. No persistence.
"""
from .labels import BetKind, BetStat, ParsedBet, parse_bet
from .evaluator import (
    BetEvaluation,
    Outcome,
    bet_profit,
    evaluate_bet,
    evaluate_parsed,
    potential_win,
)

__all__ = [
    "BetKind",
    "BetStat",
    "ParsedBet",
    "parse_bet",
    "BetEvaluation",
    "Outcome",
    "bet_profit",
    "evaluate_bet",
    "evaluate_parsed",
    "potential_win",
]
