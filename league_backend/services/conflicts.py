"""
Scheduling conflict checks for match creation.

A team is busy for MATCH_DURATION after the kickoff of any of its matches that
is not FINISHED. Venue double-booking is not checked.
"""
from __future__ import annotations

import logging
import sqlite3
import threading
import weakref
from contextlib import ExitStack, contextmanager
from datetime import datetime
from typing import Any, Iterator

from league_backend.errors import ConflictError
from league_backend.models import MATCH_DURATION, Match, to_utc_naive
from league_backend.persistence.repositories import MatchRepository

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# An entry lives only while some thread holds or waits on that team's lock.
_team_locks: weakref.WeakValueDictionary[str, Any] = weakref.WeakValueDictionary()


def _lock_for(team_id: str) -> Any:
    with _registry_lock:
        lock = _team_locks.get(team_id)
        if lock is None:
            lock = _team_locks[team_id] = threading.RLock()
        return lock


@contextmanager
def team_schedule_lock(*team_ids: str) -> Iterator[None]:
    """
    Hold the schedule lock of every given team for the duration of the block.
    Locks are taken in sorted id order so two creators never deadlock.
    """
    with ExitStack() as stack:
        for team_id in sorted(set(t for t in team_ids if t)):
            stack.enter_context(_lock_for(team_id))
        yield


def conflict_window(kickoff: datetime) -> tuple[datetime, datetime]:
    """[kickoff, kickoff + MATCH_DURATION)"""
    start = to_utc_naive(kickoff)
    return start, start + MATCH_DURATION


class ConflictChecker:
    """Read-only checks over the match collection."""

    def __init__(self) -> None:
        self._match_repo = MatchRepository()

    def conflicting_matches(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_match_id: str | None = None,
    ) -> list[Match]:
        """Non-finished matches of team_id kicking off in [window_start, window_end)."""
        return self._match_repo.find_conflicting(
            conn, team_id, to_utc_naive(window_start), to_utc_naive(window_end),
            exclude_match_id=exclude_match_id,
        )

    def has_conflict(
        self,
        conn: sqlite3.Connection,
        team_id: str,
        window_start: datetime,
        window_end: datetime,
        exclude_match_id: str | None = None,
    ) -> bool:
        return bool(self.conflicting_matches(conn, team_id, window_start, window_end, exclude_match_id))

    def check_kickoff(
        self,
        conn: sqlite3.Connection,
        home_team_id: str,
        away_team_id: str,
        kickoff: datetime,
        exclude_match_id: str | None = None,
    ) -> None:
        """
        Raise ConflictError if either team already has a non-finished match in
        the window derived from kickoff. Both teams are checked independently.
        """
        start, end = conflict_window(kickoff)
        for team_id in (home_team_id, away_team_id):
            clashes = self.conflicting_matches(conn, team_id, start, end, exclude_match_id)
            if clashes:
                logger.warning(
                    "Scheduling conflict for team %s at %s (clashes with %s)",
                    team_id, start.isoformat(), clashes[0].id,
                )
                raise ConflictError(
                    f"Team {team_id} has scheduling conflict: match {clashes[0].id} "
                    f"kicks off at {clashes[0].kickoff.isoformat()}"
                )
