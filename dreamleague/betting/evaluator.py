"""
Bet outcome evaluation against finished fixtures.
Pure: no I/O. The jornada pipeline and the realtime preview both call evaluate_bet.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from dreamleague.betting.labels import AWAY, DRAW, HOME, BetKind, BetStat, ParsedBet, parse_bet
from dreamleague.gateway.fixtures import FixtureResult, FixtureStatistics

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    WON = "won"
    LOST = "lost"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class BetEvaluation:
    outcome: Outcome
    actual: str
    needs_review: bool = False

    @property
    def won(self) -> bool:
        return self.outcome == Outcome.WON


def potential_win(amount: float, odd: float) -> int:
    """round(amount x odd), halves rounded up."""
    return int(math.floor(amount * odd + 0.5))


def bet_profit(amount: float, odd: float, won: bool) -> float:
    """Net result of a settled bet: winnings minus stake, or the lost stake."""
    if won:
        return amount * odd - amount
    return -amount


def result_category(fixture: FixtureResult) -> str:
    if fixture.home_goals > fixture.away_goals:
        return HOME
    if fixture.away_goals > fixture.home_goals:
        return AWAY
    return DRAW


def _stat_total(stat: BetStat, fixture: FixtureResult, statistics: FixtureStatistics | None) -> int | None:
    if stat == BetStat.GOALS:
        return fixture.total_goals
    if stat == BetStat.HOME_GOALS:
        return fixture.home_goals
    if stat == BetStat.AWAY_GOALS:
        return fixture.away_goals
    if statistics is None:
        return None
    if stat == BetStat.CORNERS:
        return statistics.total_corners
    if stat == BetStat.CARDS:
        return statistics.total_cards
    return statistics.total_shots_on_target


def _verdict(won: bool, actual: str) -> BetEvaluation:
    return BetEvaluation(Outcome.WON if won else Outcome.LOST, actual)


def _missing_stats(stat: BetStat) -> BetEvaluation:
    return BetEvaluation(Outcome.UNRESOLVED, f"no {stat.value} statistics yet")


# ---------- Per-kind evaluators ----------


def _eval_over_under(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    total = _stat_total(p.stat, f, s)
    if total is None:
        return _missing_stats(p.stat)
    won = total > p.threshold if p.direction == "over" else total < p.threshold
    return _verdict(won, f"{total} {p.stat.value}")


def _eval_exact(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    total = _stat_total(p.stat, f, s)
    if total is None:
        return _missing_stats(p.stat)
    return _verdict(total == p.exact, f"{total} {p.stat.value}")


def _eval_parity(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    total = _stat_total(p.stat, f, s)
    if total is None:
        return _missing_stats(p.stat)
    actual = "odd" if total % 2 == 1 else "even"
    return _verdict(actual == p.parity, f"{total} {p.stat.value} ({actual})")


def _score(f: FixtureResult) -> str:
    return f"{f.home_team} {f.home_goals}-{f.away_goals} {f.away_team}"


def _eval_outcomes(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    # RESULT, DOUBLE_CHANCE and DRAW_NO_BET: a draw is only a win if listed
    return _verdict(result_category(f) in p.outcomes, _score(f))


def _eval_both_score(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    both = f.home_goals > 0 and f.away_goals > 0
    return _verdict(both == p.expect_yes, _score(f))


def _eval_clean_sheet(p: ParsedBet, f: FixtureResult, s: FixtureStatistics | None) -> BetEvaluation:
    conceded = f.away_goals if p.side == HOME else f.home_goals
    return _verdict((conceded == 0) == p.expect_yes, _score(f))


_EVALUATORS: dict[BetKind, Callable[[ParsedBet, FixtureResult, FixtureStatistics | None], BetEvaluation]] = {
    BetKind.OVER_UNDER: _eval_over_under,
    BetKind.EXACT: _eval_exact,
    BetKind.PARITY: _eval_parity,
    BetKind.RESULT: _eval_outcomes,
    BetKind.DOUBLE_CHANCE: _eval_outcomes,
    BetKind.DRAW_NO_BET: _eval_outcomes,
    BetKind.BOTH_SCORE: _eval_both_score,
    BetKind.CLEAN_SHEET: _eval_clean_sheet,
}


def evaluate_parsed(
    parsed: ParsedBet,
    fixture: FixtureResult,
    statistics: FixtureStatistics | None = None,
) -> BetEvaluation:
    if not fixture.is_finished:
        return BetEvaluation(Outcome.UNRESOLVED, f"fixture status {fixture.status_short or 'unknown'}")
    handler = _EVALUATORS.get(parsed.kind)
    if handler is None:
        return BetEvaluation(Outcome.LOST, parsed.reason or "unsupported bet", needs_review=True)
    return handler(parsed, fixture, statistics)


def evaluate_bet(
    bet_type: str,
    bet_label: str,
    fixture: FixtureResult,
    statistics: FixtureStatistics | None = None,
) -> BetEvaluation:
    """
    Settle one bet. UNRESOLVED until the fixture is finished (FT/AET/PEN).
    Labels that cannot be parsed settle as LOST with needs_review set.
    """
    parsed = parse_bet(bet_type, bet_label, fixture.home_team, fixture.away_team)
    evaluation = evaluate_parsed(parsed, fixture, statistics)
    if evaluation.needs_review:
        logger.warning(
            "Bet needs manual review (fixture %s): type=%r label=%r reason=%s",
            fixture.fixture_id, bet_type, bet_label, parsed.reason,
        )
    return evaluation
