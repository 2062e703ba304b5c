"""
Match lifecycle: state machine, guards and the hand-off to the standings ledger.

scheduled -> in_progress -> finished, with cancelled reachable from the first
two. finished and cancelled are terminal. The ledger is called exactly once per
match, on the edge into FINISHED.
"""
from __future__ import annotations

import logging
import sqlite3
from contextlib import ExitStack
from datetime import datetime
from typing import Any, Callable

from league_backend.errors import (
    ConflictError,
    InvalidInputError,
    InvalidScoreError,
    InvalidTransitionError,
    NotFoundError,
    NotReadyError,
)
from league_backend.models import (
    START_LEAD_TIME,
    TERMINAL_STATUSES,
    Match,
    MatchStatus,
    to_utc_naive,
    utc_now,
)
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import MatchRepository, TeamRepository, VenueRepository
from league_backend.services.conflicts import ConflictChecker, team_schedule_lock
from league_backend.services.standings_ledger import StandingsLedger, standings_lock

logger = logging.getLogger(__name__)


# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[str, set[str]] = {
    MatchStatus.SCHEDULED: {MatchStatus.IN_PROGRESS, MatchStatus.CANCELLED},
    MatchStatus.IN_PROGRESS: {MatchStatus.FINISHED, MatchStatus.CANCELLED},
    MatchStatus.FINISHED: set(),
    MatchStatus.CANCELLED: set(),
}

UPDATABLE_FIELDS = frozenset({
    "home_team_id",
    "away_team_id",
    "venue_id",
    "kickoff",
    "home_score",
    "away_score",
    "status",
})


def _validate_score_pair(home_score: Any, away_score: Any) -> None:
    if home_score is None or away_score is None:
        raise InvalidScoreError("Both home_score and away_score are required")
    for label, value in (("home_score", home_score), ("away_score", away_score)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidScoreError(f"{label} must be an integer")
        if value < 0:
            raise InvalidScoreError(f"{label} must be non-negative, got {value}")


class MatchLifecycle:
    """
    Domain logic for a single match: creation guards, transitions, updates, deletion.
    Persistence is delegated to repositories; standings go through the ledger.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._match_repo = MatchRepository()
        self._team_repo = TeamRepository()
        self._venue_repo = VenueRepository()
        self._conflicts = ConflictChecker()
        self._ledger = StandingsLedger()

    # ---------- Reads ----------

    def get_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        match = self._match_repo.get(conn, match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        return match

    def list_matches(
        self,
        conn: sqlite3.Connection,
        status: str | None = None,
        team_id: str | None = None,
    ) -> list[Match]:
        if status is not None:
            status = self._parse_status(status).value
        return self._match_repo.list_all(conn, status=status, team_id=team_id)

    # ---------- Guards ----------

    def _require_team(self, conn: sqlite3.Connection, team_id: str) -> None:
        if not team_id or not self._team_repo.exists(conn, team_id):
            raise NotFoundError("Team", team_id)

    def _require_venue(self, conn: sqlite3.Connection, venue_id: str | None) -> None:
        if venue_id is not None and not self._venue_repo.exists(conn, venue_id):
            raise NotFoundError("Venue", venue_id)

    @staticmethod
    def _parse_status(value: Any) -> MatchStatus:
        try:
            return MatchStatus(value)
        except ValueError:
            raise InvalidInputError(f"Unknown match status: {value}") from None

    def _save(self, conn: sqlite3.Connection, match: Match, read_status: str) -> None:
        """Persist match unless its stored status moved away from read_status since it was read."""
        if not self._match_repo.update(conn, match, expected_status=read_status):
            stored = self._match_repo.get(conn, match.id)
            raise InvalidTransitionError(
                stored.status if stored is not None else "DELETED",
                match.status,
                f"match {match.id} was changed by another request",
            )

    # ---------- Create ----------

    def create_match(
        self,
        conn: sqlite3.Connection,
        home_team_id: str,
        away_team_id: str,
        kickoff: datetime,
        venue_id: str | None = None,
    ) -> Match:
        """
        Create a SCHEDULED match without a score.
        Both teams must exist and differ, the venue (if any) must exist, and
        neither team may have a non-finished match kicking off in [kickoff, kickoff + 2h).
        """
        kickoff = to_utc_naive(kickoff)
        with team_schedule_lock(home_team_id, away_team_id), transaction(conn):
            self._require_team(conn, home_team_id)
            self._require_team(conn, away_team_id)
            if home_team_id == away_team_id:
                raise InvalidInputError("A team cannot play against itself")
            self._require_venue(conn, venue_id)
            self._conflicts.check_kickoff(conn, home_team_id, away_team_id, kickoff)
            match = self._match_repo.create(
                conn, home_team_id, away_team_id, kickoff, venue_id=venue_id
            )
        logger.info(
            "Match %s scheduled: %s vs %s at %s",
            match.id, home_team_id, away_team_id, match.kickoff.isoformat(),
        )
        return match

    # ---------- Transitions ----------

    def start_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        """SCHEDULED -> IN_PROGRESS, no earlier than START_LEAD_TIME before kickoff."""
        with transaction(conn):
            match = self.get_match(conn, match_id)
            if match.status != MatchStatus.SCHEDULED:
                raise InvalidTransitionError(match.status, MatchStatus.IN_PROGRESS.value)
            now = to_utc_naive(self._clock())
            if match.kickoff - now > START_LEAD_TIME:
                raise NotReadyError(
                    f"Match {match_id} kicks off at {match.kickoff.isoformat()}; "
                    f"it cannot start more than {START_LEAD_TIME} early"
                )
            match.status = MatchStatus.IN_PROGRESS.value
            self._save(conn, match, MatchStatus.SCHEDULED.value)
        logger.info("Match %s started", match_id)
        return match

    def complete_match(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        home_score: int | None,
        away_score: int | None,
    ) -> Match:
        """
        IN_PROGRESS -> FINISHED with the final score. The result is applied to
        the standings and the match persisted in one transaction; on any error
        neither changes.
        """
        with standings_lock(), transaction(conn):
            match = self.get_match(conn, match_id)
            if match.status != MatchStatus.IN_PROGRESS:
                raise InvalidTransitionError(match.status, MatchStatus.FINISHED.value)
            _validate_score_pair(home_score, away_score)
            self._ledger.apply_result(
                conn, match.home_team_id, match.away_team_id, home_score, away_score
            )
            match.home_score = home_score
            match.away_score = away_score
            match.status = MatchStatus.FINISHED.value
            self._save(conn, match, MatchStatus.IN_PROGRESS.value)
        logger.info("Match %s finished %d-%d", match_id, home_score, away_score)
        return match

    def cancel_match(self, conn: sqlite3.Connection, match_id: str) -> Match:
        """SCHEDULED | IN_PROGRESS -> CANCELLED."""
        with transaction(conn):
            match = self.get_match(conn, match_id)
            read_status = match.status
            if MatchStatus.CANCELLED not in _VALID_TRANSITIONS[MatchStatus(read_status)]:
                raise InvalidTransitionError(read_status, MatchStatus.CANCELLED.value)
            match.status = MatchStatus.CANCELLED.value
            self._save(conn, match, read_status)
        logger.info("Match %s cancelled", match_id)
        return match

    # ---------- Generic update ----------

    def update_match(self, conn: sqlite3.Connection, match_id: str, fields: dict[str, Any]) -> Match:
        """
        Partial update. Keys absent from fields are left unchanged; venue_id=None
        clears the venue.

        Status changes follow the state machine, except that a non-terminal match
        may be set straight to FINISHED. Entering FINISHED requires both scores
        and applies the result to the standings before the match is saved.
        A finished or cancelled match keeps its status, teams and score.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidInputError(f"Unknown match fields: {sorted(unknown)}")
        target = self._parse_status(fields["status"]) if fields.get("status") is not None else None

        with ExitStack() as stack:
            if target == MatchStatus.FINISHED:
                stack.enter_context(standings_lock())
            stack.enter_context(transaction(conn))

            match = self.get_match(conn, match_id)
            current = MatchStatus(match.status)
            new_status = target or current

            if current in TERMINAL_STATUSES:
                if new_status != current:
                    raise InvalidTransitionError(current.value, new_status.value)
                for name in ("home_team_id", "away_team_id", "home_score", "away_score"):
                    if name in fields and fields[name] != getattr(match, name):
                        raise InvalidTransitionError(
                            current.value, current.value, f"{name} cannot change once the match is {current.value}"
                        )
            elif new_status != current:
                allowed = _VALID_TRANSITIONS[current] | {MatchStatus.FINISHED}
                if new_status not in allowed:
                    raise InvalidTransitionError(current.value, new_status.value)

            if "home_team_id" in fields:
                self._require_team(conn, fields["home_team_id"])
                match.home_team_id = fields["home_team_id"]
            if "away_team_id" in fields:
                self._require_team(conn, fields["away_team_id"])
                match.away_team_id = fields["away_team_id"]
            if match.home_team_id == match.away_team_id:
                raise InvalidInputError("A team cannot play against itself")
            if "venue_id" in fields:
                self._require_venue(conn, fields["venue_id"])
                match.venue_id = fields["venue_id"]
            if fields.get("kickoff") is not None:
                match.kickoff = to_utc_naive(fields["kickoff"])

            if "home_score" in fields:
                match.home_score = fields["home_score"]
            if "away_score" in fields:
                match.away_score = fields["away_score"]
            if match.home_score is not None or match.away_score is not None:
                _validate_score_pair(match.home_score, match.away_score)
                if new_status == MatchStatus.SCHEDULED:
                    raise InvalidScoreError("A scheduled match cannot have a score")

            if new_status == MatchStatus.FINISHED and current != MatchStatus.FINISHED:
                if not match.has_score:
                    raise InvalidScoreError("Both scores are required to finish a match")
                self._ledger.apply_result(
                    conn, match.home_team_id, match.away_team_id, match.home_score, match.away_score
                )

            match.status = new_status.value
            self._save(conn, match, current.value)

        if new_status != current:
            logger.info("Match %s updated: %s -> %s", match_id, current.value, new_status.value)
        return match

    # ---------- Delete ----------

    def delete_match(self, conn: sqlite3.Connection, match_id: str) -> None:
        """
        Delete any match that is not IN_PROGRESS. Deleting a FINISHED match
        leaves its contribution to the standings in place.
        """
        with transaction(conn):
            match = self.get_match(conn, match_id)
            if match.status == MatchStatus.IN_PROGRESS:
                raise ConflictError(f"Match {match_id} is in progress and cannot be deleted")
            if not self._match_repo.delete(conn, match_id, expected_status=match.status):
                raise ConflictError(f"Match {match_id} was changed by another request; retry the delete")
        logger.info("Match %s deleted (status %s)", match_id, match.status)
