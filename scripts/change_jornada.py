#!/usr/bin/env python3
"""
Settle a jornada from the command line: one league, or every league.
Run from project root:
    python3 scripts/change_jornada.py <league_id> <jornada>
    python3 scripts/change_jornada.py all <jornada>
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

# Ensure project root on path
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dreamleague.config import configure_logging, get_settings
from dreamleague.errors import AppError
from dreamleague.gateway import FootballApiClient
from dreamleague.persistence import get_connection, get_db_path, init_db
from dreamleague.services import JornadaService

USAGE = "usage: python3 scripts/change_jornada.py <league_id|all> <jornada>"


def main(argv: list[str]) -> int:
    if len(argv) < 2:
        print(USAGE, file=sys.stderr)
        return 1
    target, raw_jornada = argv[0], argv[1]
    try:
        jornada = int(raw_jornada)
    except ValueError:
        print(f"jornada must be a number, got {raw_jornada!r}", file=sys.stderr)
        return 1

    configure_logging()
    init_db(db_path=get_db_path())
    settings = get_settings()
    conn = get_connection()
    try:
        service = JornadaService(FootballApiClient(settings), settings)
        if target == "all":
            result = service.reset_all_leagues(conn, jornada)
            failed = [r for r in result["results"] if not r["success"]]
            print(f"Leagues processed: {result['leagues']} ({len(failed)} failed)")
            print(json.dumps(result["totals"], indent=2))
            return 1 if failed else 0
        summary = service.reset_jornada(conn, target, jornada)
        print(f"League {target}, jornada {jornada}")
        print(f"  bets evaluated:  {summary['evaluatedBets']}")
        print(f"  members updated: {summary['updatedMembers']}")
        print(f"  squads cleared:  {summary['clearedSquads']}")
        print(f"  bets deleted:    {summary['deletedBets']}")
        if summary["alreadySettled"]:
            print("  jornada was already settled; late bet results went to budgets only")
        return 0
    except AppError as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    finally:
        conn.close()


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
