"""
Standings ledger: the only writer of the standings table.

Every mutation runs under one process-wide lock and inside one DB transaction:
read both rows, apply the result, re-rank the whole table, mirror points onto
teams, commit. Re-ranking touches every row, so the lock covers the whole table.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Iterator

from league_backend.errors import InvalidInputError, InvalidScoreError, NotFoundError
from league_backend.models import POINTS_FOR_DRAW, POINTS_FOR_WIN, Standing
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import StandingRepository, TeamRepository

logger = logging.getLogger(__name__)

_STANDINGS_LOCK = threading.RLock()

# Counters a manual edit may set. goal_difference and position are always derived.
EDITABLE_FIELDS = (
    "matches_played",
    "wins",
    "draws",
    "losses",
    "goals_for",
    "goals_against",
    "points",
)


@contextmanager
def standings_lock() -> Iterator[None]:
    """Serialisation point for the standings table. Re-entrant within a thread."""
    with _STANDINGS_LOCK:
        yield


def rank(standings: list[Standing]) -> list[Standing]:
    """
    Order standings by points, goal difference, goals for (all descending).
    sorted() is stable, so rows still tied keep their input order.
    """
    return sorted(standings, key=Standing.ranking_key)


class StandingsLedger:
    """
    Applies finished-match results and keeps positions a contiguous 1..N ranking.
    Persistence is delegated to repositories.
    """

    def __init__(self) -> None:
        self._standing_repo = StandingRepository()
        self._team_repo = TeamRepository()

    # ---------- Results ----------

    def apply_result(
        self,
        conn: sqlite3.Connection,
        home_team_id: str,
        away_team_id: str,
        home_score: int,
        away_score: int,
    ) -> tuple[Standing, Standing]:
        """
        Record one finished match for both teams, re-rank the table and mirror
        points onto the Team rows. Returns the updated (home, away) standings.
        """
        if home_score is None or away_score is None or home_score < 0 or away_score < 0:
            raise InvalidScoreError(f"Scores must be non-negative integers, got {home_score}-{away_score}")
        with standings_lock(), transaction(conn):
            home = self._standing_repo.get_by_team(conn, home_team_id)
            if home is None:
                raise NotFoundError("Standing for team", home_team_id)
            away = self._standing_repo.get_by_team(conn, away_team_id)
            if away is None:
                raise NotFoundError("Standing for team", away_team_id)

            home.matches_played += 1
            away.matches_played += 1

            home.goals_for += home_score
            home.goals_against += away_score
            away.goals_for += away_score
            away.goals_against += home_score
            home.recompute_goal_difference()
            away.recompute_goal_difference()

            if home_score > away_score:
                home.wins += 1
                home.points += POINTS_FOR_WIN
                away.losses += 1
            elif home_score < away_score:
                away.wins += 1
                away.points += POINTS_FOR_WIN
                home.losses += 1
            else:
                home.draws += 1
                away.draws += 1
                home.points += POINTS_FOR_DRAW
                away.points += POINTS_FOR_DRAW

            self._standing_repo.update(conn, home)
            self._standing_repo.update(conn, away)
            positions = self._recompute_positions(conn)
            home.position = positions[home.id]
            away.position = positions[away.id]
            self._team_repo.update_points(conn, home_team_id, home.points)
            self._team_repo.update_points(conn, away_team_id, away.points)

        logger.info(
            "Result applied %s %d-%d %s; positions %d/%d",
            home_team_id, home_score, away_score, away_team_id, home.position, away.position,
        )
        return home, away

    # ---------- Ranking ----------

    def recompute_positions(self, conn: sqlite3.Connection) -> list[Standing]:
        """Re-rank the whole table and return it in position order."""
        with standings_lock(), transaction(conn):
            self._recompute_positions(conn)
            return self._standing_repo.list_by_position(conn)

    def _recompute_positions(self, conn: sqlite3.Connection) -> dict[str, int]:
        """Caller holds the lock and owns the transaction. Writes only changed rows."""
        positions: dict[str, int] = {}
        for index, standing in enumerate(rank(self._standing_repo.list_all(conn)), start=1):
            positions[standing.id] = index
            if standing.position != index:
                self._standing_repo.update_position(conn, standing.id, index)
        return positions

    def position_of(self, conn: sqlite3.Connection, team_id: str) -> int:
        """
        1-based rank of team_id derived from the current counters with the same
        comparator as recompute_positions, so a stale stored position is ignored.
        """
        with standings_lock():
            ranked = rank(self._standing_repo.list_all(conn))
        for index, standing in enumerate(ranked, start=1):
            if standing.team_id == team_id:
                return index
        raise NotFoundError("Standing for team", team_id)

    # ---------- Season ----------

    def reset_all(self, conn: sqlite3.Connection) -> int:
        """Zero every statistic and position, and every team's cached points. Returns rows reset."""
        with standings_lock(), transaction(conn):
            standings = self._standing_repo.list_all(conn)
            for s in standings:
                self._standing_repo.update(conn, Standing(id=s.id, team_id=s.team_id, position=0))
            self._team_repo.reset_all_points(conn)
        logger.info("Standings reset for %d teams", len(standings))
        return len(standings)

    # ---------- Rows ----------

    def create_for_team(self, conn: sqlite3.Connection, team_id: str) -> Standing:
        """Create the team's standing if missing and re-rank. Idempotent."""
        with standings_lock(), transaction(conn):
            if not self._team_repo.exists(conn, team_id):
                raise NotFoundError("Team", team_id)
            existing = self._standing_repo.get_by_team(conn, team_id)
            if existing is not None:
                return existing
            standing = self._standing_repo.create(conn, team_id)
            standing.position = self._recompute_positions(conn)[standing.id]
            self._team_repo.update_points(conn, team_id, standing.points)
        logger.info("Standing created for team %s at position %d", team_id, standing.position)
        return standing

    def update_standing(self, conn: sqlite3.Connection, standing_id: str, fields: dict[str, Any]) -> Standing:
        """
        Manual edit of counters (administrative correction). goal_difference is
        recomputed, the table re-ranked and the team's points mirrored.
        """
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise InvalidInputError(f"Fields not editable on a standing: {sorted(unknown)}")
        for name, value in fields.items():
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvalidInputError(f"{name} must be a non-negative integer")
        with standings_lock(), transaction(conn):
            standing = self._standing_repo.get(conn, standing_id)
            if standing is None:
                raise NotFoundError("Standing", standing_id)
            for name, value in fields.items():
                if value is not None:
                    setattr(standing, name, value)
            standing.recompute_goal_difference()
            self._standing_repo.update(conn, standing)
            standing.position = self._recompute_positions(conn)[standing.id]
            self._team_repo.update_points(conn, standing.team_id, standing.points)
        logger.info("Standing %s edited manually: %s", standing_id, fields)
        return standing

    def delete_for_team(self, conn: sqlite3.Connection, team_id: str) -> bool:
        """Remove the team's standing (if any) and close the gap in positions."""
        with standings_lock(), transaction(conn):
            standing = self._standing_repo.get_by_team(conn, team_id)
            if standing is None:
                return False
            self._standing_repo.delete(conn, standing.id)
            self._recompute_positions(conn)
        return True

    # ---------- Reads ----------

    def get_standings(self, conn: sqlite3.Connection) -> list[Standing]:
        """The table in position order."""
        with standings_lock():
            return self._standing_repo.list_by_position(conn)

    def get_top(self, conn: sqlite3.Connection, limit: int | None) -> list[Standing]:
        table = self.get_standings(conn)
        if limit is not None and limit < len(table):
            return table[:limit]
        return table

    def get_by_team(self, conn: sqlite3.Connection, team_id: str) -> Standing:
        standing = self._standing_repo.get_by_team(conn, team_id)
        if standing is None:
            raise NotFoundError("Standing for team", team_id)
        return standing

    def get(self, conn: sqlite3.Connection, standing_id: str) -> Standing:
        standing = self._standing_repo.get(conn, standing_id)
        if standing is None:
            raise NotFoundError("Standing", standing_id)
        return standing
