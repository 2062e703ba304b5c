"""
Shared fixtures: an isolated SQLite database per test and small factories.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from league_backend.persistence.db import get_connection, init_db, set_db_path
from league_backend.services import (
    MatchLifecycle,
    PlayerService,
    RoundScheduler,
    StandingsLedger,
    TeamService,
    TournamentService,
    VenueService,
)

KICKOFF = datetime(2030, 5, 4, 15, 0)


class FixedClock:
    """Injectable clock for MatchLifecycle; tests move it explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "league_test.db"
    set_db_path(path)
    init_db(db_path=path)
    return path


@pytest.fixture
def db_conn(db_path):
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def clock():
    return FixedClock(KICKOFF)


@pytest.fixture
def lifecycle(clock):
    return MatchLifecycle(clock=clock)


@pytest.fixture
def scheduler(lifecycle):
    return RoundScheduler(lifecycle)


@pytest.fixture
def ledger():
    return StandingsLedger()


@pytest.fixture
def team_service():
    return TeamService()


@pytest.fixture
def venue_service():
    return VenueService()


@pytest.fixture
def player_service():
    return PlayerService()


@pytest.fixture
def tournament_service():
    return TournamentService()


@pytest.fixture
def make_team(db_conn, team_service):
    """Factory: make_team("Name") -> Team (with its standing)."""
    def _make(name: str, **kwargs):
        return team_service.create_team(db_conn, name, **kwargs)
    return _make


@pytest.fixture
def venue(db_conn, venue_service):
    return venue_service.create_venue(db_conn, "Riverside Ground", "Leeds", 12000, surface="GRASS")


@pytest.fixture
def play(db_conn, lifecycle, clock):
    """Factory: play(home, away, hs, as_, kickoff=None) schedules, starts and completes a match."""
    counter = {"n": 0}

    def _play(home, away, home_score, away_score, kickoff=None):
        if kickoff is None:
            # a day apart, so conflict windows never overlap
            kickoff = datetime(2030, 1, 1, 12, 0) + timedelta(days=counter["n"])
            counter["n"] += 1
        match = lifecycle.create_match(db_conn, home.id, away.id, kickoff)
        clock.now = kickoff
        lifecycle.start_match(db_conn, match.id)
        return lifecycle.complete_match(db_conn, match.id, home_score, away_score)
    return _play
