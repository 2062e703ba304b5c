"""
Round generation: one batch of matches for a list of teams at a single venue.

Teams are paired by consecutive index in the order given: (0, 1), (2, 3), ...
No shuffling or balancing. Kickoffs are ROUND_SPACING apart, starting at
round_start. Each pair goes through the normal match creation path, so team
checks and conflict checks apply per pair.

Round generation is not atomic: when a pair fails, the matches created for
earlier pairs stay. Callers compare len(result) with the pair count.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime

from league_backend.errors import InvalidInputError, LeagueError
from league_backend.models import ROUND_SPACING, Match, to_utc_naive
from league_backend.services.match_lifecycle import MatchLifecycle

logger = logging.getLogger(__name__)


def round_pairings(team_ids: list[str], round_start: datetime) -> list[tuple[datetime, str, str]]:
    """
    Pair consecutive teams: (kickoff, home_team_id, away_team_id).
    Deterministic: same team list => same pairs and kickoffs.
    """
    if len(team_ids) % 2 != 0:
        raise InvalidInputError(f"Number of teams must be even, got {len(team_ids)}")
    start = to_utc_naive(round_start)
    return [
        (start + k * ROUND_SPACING, team_ids[i], team_ids[i + 1])
        for k, i in enumerate(range(0, len(team_ids), 2))
    ]


class RoundScheduler:
    """Builds a round of matches through MatchLifecycle.create_match."""

    def __init__(self, lifecycle: MatchLifecycle | None = None) -> None:
        self._lifecycle = lifecycle or MatchLifecycle()

    def generate_round(
        self,
        conn: sqlite3.Connection,
        team_ids: list[str],
        round_start: datetime,
        venue_id: str | None,
    ) -> list[Match]:
        """
        Create one match per consecutive pair of team_ids at venue_id.

        An odd team count raises InvalidInputError before anything is created.
        The first failing pair's error is re-raised unchanged, with
        ``created_matches`` (matches already created in this call) and
        ``pair_count`` set on it.
        """
        pairs = round_pairings(team_ids, round_start)
        created: list[Match] = []
        for kickoff, home_id, away_id in pairs:
            try:
                match = self._lifecycle.create_match(
                    conn, home_id, away_id, kickoff, venue_id=venue_id
                )
            except LeagueError as e:
                logger.warning(
                    "Round generation stopped at pair %d/%d (%s vs %s): %s",
                    len(created) + 1, len(pairs), home_id, away_id, e,
                )
                e.created_matches = list(created)
                e.pair_count = len(pairs)
                raise
            created.append(match)
        logger.info("Round generated: %d matches from %s", len(created), to_utc_naive(round_start).isoformat())
        return created
