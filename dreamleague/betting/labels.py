"""
Bet label parsing.
Bets are stored with the human-readable type/label the app shows ("Córners",
"Más de 8.5 córners"). parse_bet turns that pair into a ParsedBet once; the
evaluator only ever looks at the structured form.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum

_THRESHOLD_RE = re.compile(r"(\d+\.?\d*)")
_INTEGER_RE = re.compile(r"(\d+)")


class BetKind(str, Enum):
    OVER_UNDER = "over_under"
    EXACT = "exact"
    PARITY = "parity"
    RESULT = "result"
    BOTH_SCORE = "both_score"
    DOUBLE_CHANCE = "double_chance"
    DRAW_NO_BET = "draw_no_bet"
    CLEAN_SHEET = "clean_sheet"
    UNMAPPED = "unmapped"


class BetStat(str, Enum):
    GOALS = "goals"
    CORNERS = "corners"
    CARDS = "cards"
    SHOTS_ON_TARGET = "shots_on_target"
    HOME_GOALS = "home_goals"
    AWAY_GOALS = "away_goals"


# Match result categories
HOME = "home"
AWAY = "away"
DRAW = "draw"


@dataclass(frozen=True)
class ParsedBet:
    """
    Structured view of a bet label.
    outcomes: result categories that win (RESULT, DOUBLE_CHANCE, DRAW_NO_BET).
    side/expect_yes: CLEAN_SHEET ("home"/"away", sí/no); expect_yes also for BOTH_SCORE.
    """
    kind: BetKind
    stat: BetStat | None = None
    threshold: float | None = None
    direction: str | None = None  # "over" | "under"
    exact: int | None = None
    parity: str | None = None  # "odd" | "even"
    outcomes: frozenset[str] = frozenset()
    side: str | None = None
    expect_yes: bool | None = None
    reason: str | None = None


def fold(text: str | None) -> str:
    """Lower-case and strip accents so "Córners"/"corners", "Más"/"mas" compare equal."""
    decomposed = unicodedata.normalize("NFD", text or "")
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return " ".join(stripped.lower().split())


_OVER_UNDER_TYPES: dict[str, BetStat] = {
    "goles totales": BetStat.GOALS,
    "corners": BetStat.CORNERS,
    "tarjetas": BetStat.CARDS,
}
_EXACT_TYPES: dict[str, BetStat] = {
    "goles exactos": BetStat.GOALS,
    "corners exactos": BetStat.CORNERS,
    "tarjetas exactas": BetStat.CARDS,
}
_PARITY_TYPES: dict[str, BetStat] = {
    "par/impar": BetStat.GOALS,
    "corners par/impar": BetStat.CORNERS,
    "tarjetas par/impar": BetStat.CARDS,
}

_HOME_WORDS = ("local", "home")
_AWAY_WORDS = ("visitante", "away")
_DRAW_WORDS = ("empate", "draw")


def _unmapped(reason: str) -> ParsedBet:
    return ParsedBet(kind=BetKind.UNMAPPED, reason=reason)


def _contains_team(label: str, team: str) -> bool:
    return bool(team) and team in label


def _has_any(text: str, words: tuple[str, ...]) -> bool:
    return any(w in text for w in words)


def _names_home(label: str, home: str) -> bool:
    return label == "1" or _has_any(label, _HOME_WORDS) or _contains_team(label, home)


def _names_away(label: str, away: str) -> bool:
    return label == "2" or _has_any(label, _AWAY_WORDS) or _contains_team(label, away)


def _parse_over_under(stat: BetStat, label: str) -> ParsedBet:
    match = _THRESHOLD_RE.search(label)
    if not match:
        return _unmapped("no threshold in label")
    if "mas de" in label or "over" in label:
        direction = "over"
    elif "menos de" in label or "under" in label:
        direction = "under"
    else:
        return _unmapped("no over/under direction in label")
    return ParsedBet(kind=BetKind.OVER_UNDER, stat=stat, threshold=float(match.group(1)), direction=direction)


def _parse_exact(stat: BetStat, label: str) -> ParsedBet:
    match = _INTEGER_RE.search(label)
    if not match:
        return _unmapped("no exact count in label")
    return ParsedBet(kind=BetKind.EXACT, stat=stat, exact=int(match.group(1)))


def _parse_parity(stat: BetStat, label: str) -> ParsedBet:
    # "impar" contains "par": check odd first
    if "impar" in label or label == "odd":
        return ParsedBet(kind=BetKind.PARITY, stat=stat, parity="odd")
    if "par" in label or label == "even":
        return ParsedBet(kind=BetKind.PARITY, stat=stat, parity="even")
    return _unmapped("no parity in label")


def _parse_count(stat: BetStat, label: str) -> ParsedBet:
    """Count markets named loosely ("Más/Menos Goles"): exact, parity or over/under by label."""
    if "exactamente" in label or "exactly" in label:
        return _parse_exact(stat, label)
    if label in ("par", "impar", "odd", "even"):
        return _parse_parity(stat, label)
    return _parse_over_under(stat, label)


def _parse_result(label: str, home: str, away: str) -> ParsedBet:
    if "ganara" in label and _contains_team(label, home):
        return ParsedBet(kind=BetKind.RESULT, outcomes=frozenset({HOME}))
    if "ganara" in label and _contains_team(label, away):
        return ParsedBet(kind=BetKind.RESULT, outcomes=frozenset({AWAY}))
    if label == "x" or _has_any(label, _DRAW_WORDS):
        return ParsedBet(kind=BetKind.RESULT, outcomes=frozenset({DRAW}))
    if _names_home(label, home):
        return ParsedBet(kind=BetKind.RESULT, outcomes=frozenset({HOME}))
    if _names_away(label, away):
        return ParsedBet(kind=BetKind.RESULT, outcomes=frozenset({AWAY}))
    return _unmapped("label names neither team nor a draw")


def _parse_both_score(label: str) -> ParsedBet:
    if (
        label == "no"
        or label.startswith("no ")
        or "no marcara" in label
        or "al menos un equipo no" in label
        or "no ambos" in label
        or "ninguno" in label
        or "neither" in label
    ):
        return ParsedBet(kind=BetKind.BOTH_SCORE, expect_yes=False)
    if "marcan" in label or "marcaran" in label or label in ("si", "yes"):
        return ParsedBet(kind=BetKind.BOTH_SCORE, expect_yes=True)
    return _unmapped("both-score label not recognised")


def _parse_double_chance(label: str, home: str, away: str) -> ParsedBet:
    compact = label.replace(" ", "")
    if compact in ("1x", "x1"):
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({HOME, DRAW}))
    if compact in ("x2", "2x"):
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({AWAY, DRAW}))
    if compact in ("12", "21"):
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({HOME, AWAY}))
    has_home = _has_any(label, _HOME_WORDS) or _contains_team(label, home)
    has_away = _has_any(label, _AWAY_WORDS) or _contains_team(label, away)
    has_draw = _has_any(label, _DRAW_WORDS)
    if has_draw and has_home:
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({HOME, DRAW}))
    if has_draw and has_away:
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({AWAY, DRAW}))
    if has_home and has_away:
        return ParsedBet(kind=BetKind.DOUBLE_CHANCE, outcomes=frozenset({HOME, AWAY}))
    return _unmapped("double chance label not recognised")


def _parse_draw_no_bet(label: str, home: str, away: str) -> ParsedBet:
    if _names_home(label, home):
        return ParsedBet(kind=BetKind.DRAW_NO_BET, outcomes=frozenset({HOME}))
    if _names_away(label, away):
        return ParsedBet(kind=BetKind.DRAW_NO_BET, outcomes=frozenset({AWAY}))
    return _unmapped("draw-no-bet label names no side")


def _parse_clean_sheet(bet_type: str, label: str) -> ParsedBet:
    # "Portería a Cero" with the side in the label: "Sí - Local"
    side_text = bet_type if _has_any(bet_type, _HOME_WORDS + _AWAY_WORDS) else label
    if _has_any(side_text, _HOME_WORDS):
        side = HOME
    elif _has_any(side_text, _AWAY_WORDS):
        side = AWAY
    else:
        return _unmapped("clean sheet names no side")
    if label == "no" or label.startswith("no "):
        return ParsedBet(kind=BetKind.CLEAN_SHEET, side=side, expect_yes=False)
    if label.startswith("si") or label.startswith("yes"):
        return ParsedBet(kind=BetKind.CLEAN_SHEET, side=side, expect_yes=True)
    return _unmapped("clean sheet label is neither si nor no")


def _parse_by_keyword(t: str, label: str, home: str, away: str) -> ParsedBet:
    """Loosely named markets, matched on keywords in the folded type."""
    if _has_any(t, ("primera parte", "segunda parte", "first half", "second half")):
        return _unmapped("half-time markets are not settled")
    if ("porteria" in t and "cero" in t) or "clean sheet" in t:
        return _parse_clean_sheet(t, label)
    if _has_any(t, ("sin empate", "gana local o visitante", "local/visitante", "home/away",
                    "gana con reembolso", "draw no bet")):
        return _parse_draw_no_bet(label, home, away)
    if "doble oportunidad" in t or "double chance" in t:
        return _parse_double_chance(label, home, away)
    if "ambos" in t or "both" in t or "btts" in t:
        return _parse_both_score(label)
    if "resultado exacto" in t or "exact score" in t:
        return _unmapped("exact score markets are not settled")
    if "goles local" in t or "home team" in t:
        return _parse_count(BetStat.HOME_GOALS, label)
    if "goles visitante" in t or "away team" in t:
        return _parse_count(BetStat.AWAY_GOALS, label)
    if "goles" in t or "goals" in t:
        return _parse_count(BetStat.GOALS, label)
    if "par/impar" in t or "odd/even" in t:
        return _parse_parity(BetStat.GOALS, label)
    if "corner" in t:
        return _parse_count(BetStat.CORNERS, label)
    if "tarjeta" in t or "card" in t:
        return _parse_count(BetStat.CARDS, label)
    if "tiros" in t or "shots" in t:
        return _parse_over_under(BetStat.SHOTS_ON_TARGET, label)
    if _has_any(t, ("resultado", "ganador", "match winner", "match result", "1x2")):
        return _parse_result(label, home, away)
    return _unmapped(f"unknown bet type {t!r}")


def parse_bet(bet_type: str, bet_label: str, home_team: str = "", away_team: str = "") -> ParsedBet:
    """
    Parse a stored (type, label) pair. Never raises: anything not understood
    comes back as BetKind.UNMAPPED with a reason.

    The fixed vocabulary ("Goles totales", "Corners par/impar", ...) is matched
    exactly first; anything else goes through keyword matching, which also covers
    the translated API market names ("Más/Menos Goles", "Ganador del Partido")
    and their generic labels ("Local", "Empate", "1", "X", "Sí").
    """
    t = fold(bet_type)
    label = fold(bet_label)
    home = fold(home_team)
    away = fold(away_team)

    if t in _OVER_UNDER_TYPES:
        return _parse_over_under(_OVER_UNDER_TYPES[t], label)
    if t in _EXACT_TYPES:
        return _parse_exact(_EXACT_TYPES[t], label)
    if t in _PARITY_TYPES:
        return _parse_parity(_PARITY_TYPES[t], label)
    if t == "resultado":
        return _parse_result(label, home, away)
    if t == "ambos marcan":
        return _parse_both_score(label)
    if t == "doble oportunidad":
        return _parse_double_chance(label, home, away)
    return _parse_by_keyword(t, label, home, away)
