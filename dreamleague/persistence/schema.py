"""
SQLite schema for league, betting and player-stats entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def leagues_schema() -> str:
    """jornada_status: editable | locked."""
    return """
    CREATE TABLE IF NOT EXISTS leagues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        code TEXT NOT NULL,
        leader_id TEXT NOT NULL,
        current_jornada INTEGER NOT NULL DEFAULT 1,
        jornada_status TEXT NOT NULL DEFAULT 'editable',
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_leagues_code ON leagues(code);
    """


def league_members_schema() -> str:
    """points_per_jornada: JSON object jornada -> points."""
    return """
    CREATE TABLE IF NOT EXISTS league_members (
        league_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        points INTEGER NOT NULL DEFAULT 0,
        budget INTEGER NOT NULL DEFAULT 500,
        initial_budget INTEGER NOT NULL DEFAULT 500,
        betting_budget INTEGER NOT NULL DEFAULT 250,
        points_per_jornada TEXT NOT NULL DEFAULT '{}',
        joined_at TEXT NOT NULL,
        PRIMARY KEY (league_id, user_id),
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_league_members_user ON league_members(user_id);
    """


def players_schema() -> str:
    """id is the football API player id. price is curated, never synced."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        position TEXT NOT NULL,
        team_id INTEGER,
        team_name TEXT,
        price INTEGER NOT NULL DEFAULT 0,
        last_jornada_points INTEGER NOT NULL DEFAULT 0,
        last_jornada_number INTEGER
    );
    CREATE INDEX IF NOT EXISTS ix_players_team ON players(team_id);
    """


def squads_schema() -> str:
    """One squad per user per league; squad_players emptied every jornada."""
    return """
    CREATE TABLE IF NOT EXISTS squads (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        league_id TEXT NOT NULL,
        formation TEXT NOT NULL DEFAULT '4-4-2',
        captain_position TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_squads_league_user ON squads(league_id, user_id);

    CREATE TABLE IF NOT EXISTS squad_players (
        squad_id TEXT NOT NULL,
        position TEXT NOT NULL,
        player_id INTEGER NOT NULL,
        role TEXT NOT NULL,
        price_paid INTEGER NOT NULL DEFAULT 0,
        PRIMARY KEY (squad_id, position),
        FOREIGN KEY (squad_id) REFERENCES squads(id),
        FOREIGN KEY (player_id) REFERENCES players(id)
    );
    """


def bets_schema() -> str:
    """status: pending | won | lost. Combi legs have amount 0 and combi_id set."""
    return """
    CREATE TABLE IF NOT EXISTS bets (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        jornada INTEGER NOT NULL,
        match_id INTEGER NOT NULL,
        bet_type TEXT NOT NULL,
        bet_label TEXT NOT NULL,
        odd REAL NOT NULL,
        amount INTEGER NOT NULL,
        potential_win INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_bets_league_jornada ON bets(league_id, jornada);
    CREATE INDEX IF NOT EXISTS ix_bets_status ON bets(status);
    """
    # combi_id and settled_applied added via migration


def bet_combis_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS bet_combis (
        id TEXT PRIMARY KEY,
        league_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        jornada INTEGER NOT NULL,
        total_odd REAL NOT NULL,
        amount INTEGER NOT NULL,
        potential_win INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'pending',
        created_at TEXT NOT NULL,
        FOREIGN KEY (league_id) REFERENCES leagues(id)
    );
    CREATE INDEX IF NOT EXISTS ix_bet_combis_league_jornada ON bet_combis(league_id, jornada);
    """
    # settled_applied added via migration


def player_stats_schema() -> str:
    """Cached per (player, jornada, season). stats and points_breakdown are JSON."""
    return """
    CREATE TABLE IF NOT EXISTS player_stats (
        player_id INTEGER NOT NULL,
        jornada INTEGER NOT NULL,
        season INTEGER NOT NULL,
        fixture_id INTEGER NOT NULL DEFAULT 0,
        team_id INTEGER,
        minutes INTEGER NOT NULL DEFAULT 0,
        total_points INTEGER NOT NULL DEFAULT 0,
        points_breakdown TEXT NOT NULL DEFAULT '[]',
        stats TEXT NOT NULL DEFAULT '{}',
        updated_at TEXT NOT NULL,
        PRIMARY KEY (player_id, jornada, season)
    );
    """


def jornada_settlements_schema() -> str:
    """One row once a league's jornada budgets were applied."""
    return """
    CREATE TABLE IF NOT EXISTS jornada_settlements (
        league_id TEXT NOT NULL,
        jornada INTEGER NOT NULL,
        settled_at TEXT NOT NULL,
        summary TEXT NOT NULL DEFAULT '{}',
        PRIMARY KEY (league_id, jornada)
    );
    """


def all_schema_sql() -> str:
    return "\n".join([
        leagues_schema(),
        league_members_schema(),
        players_schema(),
        squads_schema(),
        bets_schema(),
        bet_combis_schema(),
        player_stats_schema(),
        jornada_settlements_schema(),
    ])
