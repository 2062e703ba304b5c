"""
Repository interfaces for league data.
No business logic; only read/write operations. Repositories never commit;
callers wrap writes in persistence.db.transaction.
"""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime
from typing import Any

from league_backend.models import (
    Match,
    MatchStatus,
    Player,
    Standing,
    Team,
    User,
    UserRole,
    Venue,
    to_utc_naive,
    utc_now,
)


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    return to_utc_naive(datetime.fromisoformat(s.replace("Z", "+00:00")))


def _format_datetime(dt: datetime) -> str:
    """Fixed-width ISO text so SQL string comparison orders kickoffs correctly."""
    return to_utc_naive(dt).isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _format_datetime(utc_now())


# ---------- UserRepository ----------


class UserRepository:
    """CRUD for users. Passwords are stored as hashes only."""

    def create(
        self,
        conn: sqlite3.Connection,
        username: str,
        password_hash: str,
        role: str = UserRole.USER.value,
        id: str | None = None,
    ) -> User:
        uid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            "INSERT INTO users (id, username, password_hash, role, created_at) VALUES (?, ?, ?, ?, ?)",
            (uid, username, password_hash, role, now),
        )
        return User(
            id=uid, username=username, password_hash=password_hash, role=role,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, user_id: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, password_hash, role, created_at FROM users WHERE id = ?",
            (user_id,),
        ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, conn: sqlite3.Connection, username: str) -> User | None:
        row = conn.execute(
            "SELECT id, username, password_hash, role, created_at FROM users WHERE username = ?",
            (username,),
        ).fetchone()
        return _row_to_user(row) if row is not None else None


def _row_to_user(r: sqlite3.Row) -> User:
    return User(
        id=r["id"],
        username=r["username"],
        password_hash=r["password_hash"],
        role=r["role"],
        created_at=_parse_datetime(r["created_at"]),
    )


# ---------- TeamRepository ----------

_TEAM_COLS = "id, name, city, coach, founded_year, points, created_at"


class TeamRepository:
    """CRUD for teams. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        city: str | None = None,
        coach: str | None = None,
        founded_year: int | None = None,
        id: str | None = None,
    ) -> Team:
        tid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            f"INSERT INTO teams ({_TEAM_COLS}) VALUES (?, ?, ?, ?, ?, 0, ?)",
            (tid, name, city, coach, founded_year, now),
        )
        return Team(
            id=tid, name=name, city=city, coach=coach, founded_year=founded_year,
            points=0, created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, team_id: str) -> Team | None:
        row = conn.execute(f"SELECT {_TEAM_COLS} FROM teams WHERE id = ?", (team_id,)).fetchone()
        return _row_to_team(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, team_id: str) -> bool:
        return conn.execute("SELECT 1 FROM teams WHERE id = ?", (team_id,)).fetchone() is not None

    def get_by_name(self, conn: sqlite3.Connection, name: str) -> Team | None:
        row = conn.execute(f"SELECT {_TEAM_COLS} FROM teams WHERE name = ?", (name,)).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_all(self, conn: sqlite3.Connection, city: str | None = None) -> list[Team]:
        if city is not None:
            rows = conn.execute(
                f"SELECT {_TEAM_COLS} FROM teams WHERE city = ? ORDER BY created_at, rowid", (city,)
            ).fetchall()
        else:
            rows = conn.execute(f"SELECT {_TEAM_COLS} FROM teams ORDER BY created_at, rowid").fetchall()
        return [_row_to_team(r) for r in rows]

    def update(self, conn: sqlite3.Connection, team: Team) -> None:
        """Persist descriptive fields. points is written via update_points only."""
        conn.execute(
            "UPDATE teams SET name = ?, city = ?, coach = ?, founded_year = ? WHERE id = ?",
            (team.name, team.city, team.coach, team.founded_year, team.id),
        )

    def update_points(self, conn: sqlite3.Connection, team_id: str, points: int) -> None:
        conn.execute("UPDATE teams SET points = ? WHERE id = ?", (points, team_id))

    def reset_all_points(self, conn: sqlite3.Connection) -> None:
        conn.execute("UPDATE teams SET points = 0")

    def delete(self, conn: sqlite3.Connection, team_id: str) -> None:
        conn.execute("DELETE FROM teams WHERE id = ?", (team_id,))


def _row_to_team(r: sqlite3.Row) -> Team:
    return Team(
        id=r["id"],
        name=r["name"],
        city=r["city"],
        coach=r["coach"],
        founded_year=r["founded_year"],
        points=r["points"],
        created_at=_parse_datetime(r["created_at"]),
    )


# ---------- VenueRepository ----------

_VENUE_COLS = "id, name, city, capacity, surface, created_at"


class VenueRepository:
    """CRUD for venues. No business logic."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        city: str,
        capacity: int,
        surface: str | None = None,
        id: str | None = None,
    ) -> Venue:
        vid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            f"INSERT INTO venues ({_VENUE_COLS}) VALUES (?, ?, ?, ?, ?, ?)",
            (vid, name, city, capacity, surface, now),
        )
        return Venue(
            id=vid, name=name, city=city, capacity=capacity, surface=surface,
            created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, venue_id: str) -> Venue | None:
        row = conn.execute(f"SELECT {_VENUE_COLS} FROM venues WHERE id = ?", (venue_id,)).fetchone()
        return _row_to_venue(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, venue_id: str) -> bool:
        return conn.execute("SELECT 1 FROM venues WHERE id = ?", (venue_id,)).fetchone() is not None

    def get_by_name(self, conn: sqlite3.Connection, name: str) -> Venue | None:
        row = conn.execute(f"SELECT {_VENUE_COLS} FROM venues WHERE name = ?", (name,)).fetchone()
        return _row_to_venue(row) if row is not None else None

    def list_all(self, conn: sqlite3.Connection) -> list[Venue]:
        rows = conn.execute(f"SELECT {_VENUE_COLS} FROM venues ORDER BY created_at, rowid").fetchall()
        return [_row_to_venue(r) for r in rows]

    def update(self, conn: sqlite3.Connection, venue: Venue) -> None:
        conn.execute(
            "UPDATE venues SET name = ?, city = ?, capacity = ?, surface = ? WHERE id = ?",
            (venue.name, venue.city, venue.capacity, venue.surface, venue.id),
        )

    def delete(self, conn: sqlite3.Connection, venue_id: str) -> None:
        conn.execute("DELETE FROM venues WHERE id = ?", (venue_id,))


def _row_to_venue(r: sqlite3.Row) -> Venue:
    return Venue(
        id=r["id"],
        name=r["name"],
        city=r["city"],
        capacity=r["capacity"],
        surface=r["surface"],
        created_at=_parse_datetime(r["created_at"]),
    )


# ---------- PlayerRepository ----------

_PLAYER_COLS = "id, name, team_id, position, jersey_number, age, goals_scored, created_at"


class PlayerRepository:
    """CRUD for players. Jersey uniqueness is checked by the registry service."""

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        team_id: str,
        age: int,
        position: str | None = None,
        jersey_number: int | None = None,
        goals_scored: int = 0,
        id: str | None = None,
    ) -> Player:
        pid = id or str(uuid.uuid4())
        now = _now_iso()
        conn.execute(
            f"INSERT INTO players ({_PLAYER_COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (pid, name, team_id, position, jersey_number, age, goals_scored, now),
        )
        return Player(
            id=pid, name=name, team_id=team_id, position=position, jersey_number=jersey_number,
            age=age, goals_scored=goals_scored, created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(f"SELECT {_PLAYER_COLS} FROM players WHERE id = ?", (player_id,)).fetchone()
        return _row_to_player(row) if row is not None else None

    def list_all(self, conn: sqlite3.Connection) -> list[Player]:
        rows = conn.execute(f"SELECT {_PLAYER_COLS} FROM players ORDER BY created_at, rowid").fetchall()
        return [_row_to_player(r) for r in rows]

    def list_by_team(self, conn: sqlite3.Connection, team_id: str) -> list[Player]:
        rows = conn.execute(
            f"SELECT {_PLAYER_COLS} FROM players WHERE team_id = ? ORDER BY created_at, rowid",
            (team_id,),
        ).fetchall()
        return [_row_to_player(r) for r in rows]

    def jersey_taken(
        self, conn: sqlite3.Connection, team_id: str, jersey_number: int, exclude_id: str | None = None
    ) -> bool:
        row = conn.execute(
            "SELECT 1 FROM players WHERE team_id = ? AND jersey_number = ? AND id IS NOT ?",
            (team_id, jersey_number, exclude_id),
        ).fetchone()
        return row is not None

    def update(self, conn: sqlite3.Connection, player: Player) -> None:
        conn.execute(
            "UPDATE players SET name = ?, team_id = ?, position = ?, jersey_number = ?, age = ?, goals_scored = ? WHERE id = ?",
            (player.name, player.team_id, player.position, player.jersey_number, player.age,
             player.goals_scored, player.id),
        )

    def delete(self, conn: sqlite3.Connection, player_id: str) -> None:
        conn.execute("DELETE FROM players WHERE id = ?", (player_id,))

    def delete_by_team(self, conn: sqlite3.Connection, team_id: str) -> None:
        conn.execute("DELETE FROM players WHERE team_id = ?", (team_id,))


def _row_to_player(r: sqlite3.Row) -> Player:
    return Player(
        id=r["id"],
        name=r["name"],
        team_id=r["team_id"],
        position=r["position"],
        jersey_number=r["jersey_number"],
        age=r["age"],
        goals_scored=r["goals_scored"],
        created_at=_parse_datetime(r["created_at"]),
    )


# ---------- MatchRepository ----------

_MATCH_COLS = "id, home_team_id, away_team_id, venue_id, kickoff, home_score, away_score, status, created_at"


class MatchRepository:
    """CRUD for matches. Status guards live in services.match_lifecycle."""

    def create(
        self,
        conn: sqlite3.Connection,
        home_team_id: str,
        away_team_id: str,
        kickoff: datetime,
        venue_id: str | None = None,
        id: str | None = None,
    ) -> Match:
        """Always inserts a SCHEDULED match without a score."""
        mid = id or str(uuid.uuid4())
        now = _now_iso()
        kickoff_iso = _format_datetime(kickoff)
        conn.execute(
            f"INSERT INTO matches ({_MATCH_COLS}) VALUES (?, ?, ?, ?, ?, NULL, NULL, ?, ?)",
            (mid, home_team_id, away_team_id, venue_id, kickoff_iso, MatchStatus.SCHEDULED.value, now),
        )
        return Match(
            id=mid, home_team_id=home_team_id, away_team_id=away_team_id, venue_id=venue_id,
            kickoff=_parse_datetime(kickoff_iso), home_score=None, away_score=None,
            status=MatchStatus.SCHEDULED.value, created_at=_parse_datetime(now),
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute(f"SELECT {_MATCH_COLS} FROM matches WHERE id = ?", (match_id,)).fetchone()
        return _row_to_match(row) if row is not None else None

    def exists(self, conn: sqlite3.Connection, match_id: str) -> bool:
        return conn.execute("SELECT 1 FROM matches WHERE id = ?", (match_id,)).fetchone() is not None

    def list_all(
        self,
        conn: sqlite3.Connection,
        status: str | None = None,
        team_id: str | None = None,
    ) -> list[Match]:
        clauses: list[str] = []
        args: list[Any] = []
        if status is not None:
            clauses.append("status = ?")
            args.append(status)
        if team_id is not None:
            clauses.append("(home_team_id = ? OR away_team_id = ?)")
            args.extend([team_id, team_id])
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches{where} ORDER BY kickoff, rowid", args
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def find_conflicting(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_match_id: str | None = None,
    ) -> list[Match]:
        """Non-finished matches of team_id with window_start <= kickoff < window_end."""
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches "
            "WHERE (home_team_id = ? OR away_team_id = ?) "
            "AND kickoff >= ? AND kickoff < ? AND status != ? AND id IS NOT ? "
            "ORDER BY kickoff, rowid",
            (
                team_id, team_id,
                _format_datetime(window_start), _format_datetime(window_end),
                MatchStatus.FINISHED.value, exclude_match_id,
            ),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def list_between(self, conn: sqlite3.Connection, start: datetime, end: datetime) -> list[Match]:
        """Matches with start <= kickoff < end, any status."""
        rows = conn.execute(
            f"SELECT {_MATCH_COLS} FROM matches WHERE kickoff >= ? AND kickoff < ? ORDER BY kickoff, rowid",
            (_format_datetime(start), _format_datetime(end)),
        ).fetchall()
        return [_row_to_match(r) for r in rows]

    def update(self, conn: sqlite3.Connection, match: Match, expected_status: str | None = None) -> bool:
        """
        Write every column. With expected_status the row is only written while its
        stored status still equals expected_status. Returns whether a row was written.
        """
        sql = (
            "UPDATE matches SET home_team_id = ?, away_team_id = ?, venue_id = ?, kickoff = ?, "
            "home_score = ?, away_score = ?, status = ? WHERE id = ?"
        )
        args: list[Any] = [
            match.home_team_id, match.away_team_id, match.venue_id, _format_datetime(match.kickoff),
            match.home_score, match.away_score, match.status, match.id,
        ]
        if expected_status is not None:
            sql += " AND status = ?"
            args.append(expected_status)
        return conn.execute(sql, args).rowcount == 1

    def delete(self, conn: sqlite3.Connection, match_id: str, expected_status: str | None = None) -> bool:
        if expected_status is None:
            cur = conn.execute("DELETE FROM matches WHERE id = ?", (match_id,))
        else:
            cur = conn.execute("DELETE FROM matches WHERE id = ? AND status = ?", (match_id, expected_status))
        return cur.rowcount == 1

    def delete_unfinished(self, conn: sqlite3.Connection) -> int:
        """Delete every match whose status is not FINISHED. Returns the number removed."""
        cur = conn.execute("DELETE FROM matches WHERE status != ?", (MatchStatus.FINISHED.value,))
        return cur.rowcount


def _row_to_match(r: sqlite3.Row) -> Match:
    return Match(
        id=r["id"],
        home_team_id=r["home_team_id"],
        away_team_id=r["away_team_id"],
        venue_id=r["venue_id"],
        kickoff=_parse_datetime(r["kickoff"]),
        home_score=r["home_score"],
        away_score=r["away_score"],
        status=r["status"],
        created_at=_parse_datetime(r["created_at"]),
    )


# ---------- StandingRepository ----------

_STANDING_COLS = (
    "id, team_id, position, matches_played, wins, draws, losses, "
    "goals_for, goals_against, goal_difference, points"
)


class StandingRepository:
    """
    CRUD for standings. Only services.standings_ledger writes through this
    repository, under the standings lock.
    """

    def create(self, conn: sqlite3.Connection, team_id: str, id: str | None = None) -> Standing:
        sid = id or str(uuid.uuid4())
        seq = conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM standings").fetchone()[0]
        conn.execute(
            "INSERT INTO standings (id, seq, team_id, position) VALUES (?, ?, ?, 0)",
            (sid, seq, team_id),
        )
        return Standing(id=sid, team_id=team_id, position=0)

    def get(self, conn: sqlite3.Connection, standing_id: str) -> Standing | None:
        row = conn.execute(
            f"SELECT {_STANDING_COLS} FROM standings WHERE id = ?", (standing_id,)
        ).fetchone()
        return _row_to_standing(row) if row is not None else None

    def get_by_team(self, conn: sqlite3.Connection, team_id: str) -> Standing | None:
        row = conn.execute(
            f"SELECT {_STANDING_COLS} FROM standings WHERE team_id = ?", (team_id,)
        ).fetchone()
        return _row_to_standing(row) if row is not None else None

    def list_all(self, conn: sqlite3.Connection) -> list[Standing]:
        """All standings in insertion order (the tie-break order of the ranking)."""
        rows = conn.execute(f"SELECT {_STANDING_COLS} FROM standings ORDER BY seq").fetchall()
        return [_row_to_standing(r) for r in rows]

    def list_by_position(self, conn: sqlite3.Connection) -> list[Standing]:
        rows = conn.execute(
            f"SELECT {_STANDING_COLS} FROM standings ORDER BY position, seq"
        ).fetchall()
        return [_row_to_standing(r) for r in rows]

    def count(self, conn: sqlite3.Connection) -> int:
        return conn.execute("SELECT COUNT(*) FROM standings").fetchone()[0]

    def update(self, conn: sqlite3.Connection, standing: Standing) -> None:
        conn.execute(
            "UPDATE standings SET position = ?, matches_played = ?, wins = ?, draws = ?, losses = ?, "
            "goals_for = ?, goals_against = ?, goal_difference = ?, points = ? WHERE id = ?",
            (
                standing.position, standing.matches_played, standing.wins, standing.draws,
                standing.losses, standing.goals_for, standing.goals_against,
                standing.goal_difference, standing.points, standing.id,
            ),
        )

    def update_position(self, conn: sqlite3.Connection, standing_id: str, position: int) -> None:
        conn.execute("UPDATE standings SET position = ? WHERE id = ?", (position, standing_id))

    def delete(self, conn: sqlite3.Connection, standing_id: str) -> None:
        conn.execute("DELETE FROM standings WHERE id = ?", (standing_id,))


def _row_to_standing(r: sqlite3.Row) -> Standing:
    return Standing(
        id=r["id"],
        team_id=r["team_id"],
        position=r["position"],
        matches_played=r["matches_played"],
        wins=r["wins"],
        draws=r["draws"],
        losses=r["losses"],
        goals_for=r["goals_for"],
        goals_against=r["goals_against"],
        goal_difference=r["goal_difference"],
        points=r["points"],
    )
