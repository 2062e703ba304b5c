"""
SQLite schema for league entities.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def users_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        role TEXT NOT NULL DEFAULT 'USER',
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_users_username ON users(username);
    """


def teams_schema() -> str:
    """points is a cache of standings.points, written only by the standings ledger."""
    return """
    CREATE TABLE IF NOT EXISTS teams (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        city TEXT,
        coach TEXT,
        founded_year INTEGER,
        points INTEGER NOT NULL DEFAULT 0 CHECK (points >= 0),
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_teams_name ON teams(name);
    """


def venues_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS venues (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        city TEXT NOT NULL,
        capacity INTEGER NOT NULL CHECK (capacity > 0),
        surface TEXT,
        created_at TEXT NOT NULL
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_venues_name ON venues(name);
    """


def players_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        team_id TEXT NOT NULL,
        position TEXT,
        jersey_number INTEGER,
        age INTEGER NOT NULL,
        goals_scored INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE INDEX IF NOT EXISTS ix_players_team ON players(team_id);
    """


def matches_schema() -> str:
    """status: SCHEDULED | IN_PROGRESS | FINISHED | CANCELLED. Scores NULL until set."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        home_team_id TEXT NOT NULL,
        away_team_id TEXT NOT NULL,
        venue_id TEXT,
        kickoff TEXT NOT NULL,
        home_score INTEGER,
        away_score INTEGER,
        status TEXT NOT NULL DEFAULT 'SCHEDULED',
        created_at TEXT NOT NULL,
        FOREIGN KEY (home_team_id) REFERENCES teams(id),
        FOREIGN KEY (away_team_id) REFERENCES teams(id),
        FOREIGN KEY (venue_id) REFERENCES venues(id),
        CHECK (home_team_id <> away_team_id),
        CHECK ((home_score IS NULL) = (away_score IS NULL))
    );
    CREATE INDEX IF NOT EXISTS ix_matches_home ON matches(home_team_id);
    CREATE INDEX IF NOT EXISTS ix_matches_away ON matches(away_team_id);
    CREATE INDEX IF NOT EXISTS ix_matches_kickoff ON matches(kickoff);
    """


def standings_schema() -> str:
    """Exactly one standing per team. seq keeps insertion order for ranking ties."""
    return """
    CREATE TABLE IF NOT EXISTS standings (
        id TEXT PRIMARY KEY,
        seq INTEGER NOT NULL,
        team_id TEXT NOT NULL,
        position INTEGER NOT NULL DEFAULT 0,
        matches_played INTEGER NOT NULL DEFAULT 0,
        wins INTEGER NOT NULL DEFAULT 0,
        draws INTEGER NOT NULL DEFAULT 0,
        losses INTEGER NOT NULL DEFAULT 0,
        goals_for INTEGER NOT NULL DEFAULT 0,
        goals_against INTEGER NOT NULL DEFAULT 0,
        goal_difference INTEGER NOT NULL DEFAULT 0,
        points INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (team_id) REFERENCES teams(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_standings_team ON standings(team_id);
    """


def all_schema_sql() -> str:
    """Combine all schema DDL for a single execution. Order: users, teams, venues, players, matches, standings."""
    return "\n".join([
        users_schema(),
        teams_schema(),
        venues_schema(),
        players_schema(),
        matches_schema(),
        standings_schema(),
    ])
