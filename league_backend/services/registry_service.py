"""
Registry services for teams, venues and players.
Validation and uniqueness rules live here; repositories stay dumb.

Creating a team creates its standing; deleting a team deletes its standing
and players. Both go through the standings ledger so positions stay contiguous.
"""
from __future__ import annotations

import logging
import sqlite3
from typing import Any

from league_backend.errors import ConflictError, InvalidInputError, NotFoundError
from league_backend.models import (
    MatchStatus,
    Player,
    PlayerPosition,
    SurfaceType,
    Team,
    Venue,
    utc_now,
)
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import (
    MatchRepository,
    PlayerRepository,
    TeamRepository,
    VenueRepository,
)
from league_backend.services.standings_ledger import StandingsLedger, standings_lock

logger = logging.getLogger(__name__)

_ACTIVE_STATUSES = (MatchStatus.SCHEDULED.value, MatchStatus.IN_PROGRESS.value)


def _required_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{label} must not be empty")
    return value.strip()


def _optional_text(value: Any, label: str) -> str | None:
    if value is None:
        return None
    return _required_text(value, label)


def _check_fields(fields: dict[str, Any], allowed: set[str], entity: str) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise InvalidInputError(f"Unknown {entity} fields: {sorted(unknown)}")


# ---------- Teams ----------


class TeamService:
    """Teams and their 1:1 standing."""

    def __init__(self) -> None:
        self._team_repo = TeamRepository()
        self._match_repo = MatchRepository()
        self._player_repo = PlayerRepository()
        self._ledger = StandingsLedger()

    def _validate_year(self, year: Any) -> int | None:
        if year is None:
            return None
        if isinstance(year, bool) or not isinstance(year, int) or year <= 0 or year > utc_now().year:
            raise InvalidInputError(f"founded_year must be a past year, got {year}")
        return year

    def get_team(self, conn: sqlite3.Connection, team_id: str) -> Team:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        return team

    def get_team_by_name(self, conn: sqlite3.Connection, name: str) -> Team:
        team = self._team_repo.get_by_name(conn, name)
        if team is None:
            raise NotFoundError("Team", name)
        return team

    def list_teams(self, conn: sqlite3.Connection, city: str | None = None) -> list[Team]:
        return self._team_repo.list_all(conn, city=city)

    def create_team(
        self,
        conn: sqlite3.Connection,
        name: str,
        city: str | None = None,
        coach: str | None = None,
        founded_year: int | None = None,
    ) -> Team:
        """Create a team with a zeroed standing and re-rank the table."""
        name = _required_text(name, "Team name")
        city = _optional_text(city, "City")
        coach = _optional_text(coach, "Coach")
        founded_year = self._validate_year(founded_year)
        with standings_lock(), transaction(conn):
            if self._team_repo.get_by_name(conn, name) is not None:
                raise ConflictError(f"Team name already taken: {name}")
            team = self._team_repo.create(conn, name, city=city, coach=coach, founded_year=founded_year)
            self._ledger.create_for_team(conn, team.id)
        logger.info("Team %s created (%s)", team.id, name)
        return team

    def update_team(self, conn: sqlite3.Connection, team_id: str, fields: dict[str, Any]) -> Team:
        """Partial update of name, city, coach, founded_year. points is ledger-owned."""
        _check_fields(fields, {"name", "city", "coach", "founded_year"}, "team")
        with transaction(conn):
            team = self.get_team(conn, team_id)
            if "name" in fields:
                name = _required_text(fields["name"], "Team name")
                other = self._team_repo.get_by_name(conn, name)
                if other is not None and other.id != team_id:
                    raise ConflictError(f"Team name already taken: {name}")
                team.name = name
            if "city" in fields:
                team.city = _optional_text(fields["city"], "City")
            if "coach" in fields:
                team.coach = _optional_text(fields["coach"], "Coach")
            if "founded_year" in fields:
                team.founded_year = self._validate_year(fields["founded_year"])
            self._team_repo.update(conn, team)
        return team

    def delete_team(self, conn: sqlite3.Connection, team_id: str) -> None:
        """
        Delete the team, its players and its standing. Refused while the team is
        playing. Its SCHEDULED matches are cancelled; finished ones stay as history.
        """
        with standings_lock(), transaction(conn):
            self.get_team(conn, team_id)
            live = self._match_repo.list_all(conn, status=MatchStatus.IN_PROGRESS.value, team_id=team_id)
            if live:
                raise ConflictError(f"Team {team_id} has a match in progress ({live[0].id})")
            pending = self._match_repo.list_all(conn, status=MatchStatus.SCHEDULED.value, team_id=team_id)
            for match in pending:
                match.status = MatchStatus.CANCELLED.value
                if not self._match_repo.update(conn, match, expected_status=MatchStatus.SCHEDULED.value):
                    raise ConflictError(f"Match {match.id} changed while team {team_id} was being deleted")
            self._ledger.delete_for_team(conn, team_id)
            self._player_repo.delete_by_team(conn, team_id)
            self._team_repo.delete(conn, team_id)
        logger.info("Team %s deleted, %d scheduled matches cancelled", team_id, len(pending))


# ---------- Venues ----------


class VenueService:

    def __init__(self) -> None:
        self._venue_repo = VenueRepository()
        self._match_repo = MatchRepository()

    @staticmethod
    def _validate_capacity(capacity: Any) -> int:
        if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity <= 0:
            raise InvalidInputError(f"Capacity must be a positive integer, got {capacity}")
        return capacity

    @staticmethod
    def _validate_surface(surface: Any) -> str | None:
        if surface is None:
            return None
        try:
            return SurfaceType(surface).value
        except ValueError:
            raise InvalidInputError(f"Unknown surface type: {surface}") from None

    def get_venue(self, conn: sqlite3.Connection, venue_id: str) -> Venue:
        venue = self._venue_repo.get(conn, venue_id)
        if venue is None:
            raise NotFoundError("Venue", venue_id)
        return venue

    def list_venues(self, conn: sqlite3.Connection) -> list[Venue]:
        return self._venue_repo.list_all(conn)

    def create_venue(
        self,
        conn: sqlite3.Connection,
        name: str,
        city: str,
        capacity: int,
        surface: str | None = None,
    ) -> Venue:
        name = _required_text(name, "Venue name")
        city = _required_text(city, "City")
        capacity = self._validate_capacity(capacity)
        surface = self._validate_surface(surface)
        with transaction(conn):
            if self._venue_repo.get_by_name(conn, name) is not None:
                raise ConflictError(f"Venue name already taken: {name}")
            venue = self._venue_repo.create(conn, name, city, capacity, surface=surface)
        logger.info("Venue %s created (%s)", venue.id, name)
        return venue

    def update_venue(self, conn: sqlite3.Connection, venue_id: str, fields: dict[str, Any]) -> Venue:
        _check_fields(fields, {"name", "city", "capacity", "surface"}, "venue")
        with transaction(conn):
            venue = self.get_venue(conn, venue_id)
            if "name" in fields:
                name = _required_text(fields["name"], "Venue name")
                other = self._venue_repo.get_by_name(conn, name)
                if other is not None and other.id != venue_id:
                    raise ConflictError(f"Venue name already taken: {name}")
                venue.name = name
            if "city" in fields:
                venue.city = _required_text(fields["city"], "City")
            if "capacity" in fields:
                venue.capacity = self._validate_capacity(fields["capacity"])
            if "surface" in fields:
                venue.surface = self._validate_surface(fields["surface"])
            self._venue_repo.update(conn, venue)
        return venue

    def delete_venue(self, conn: sqlite3.Connection, venue_id: str) -> None:
        """Refused while a scheduled or in-progress match is booked at the venue."""
        with transaction(conn):
            self.get_venue(conn, venue_id)
            booked = [
                m for m in self._match_repo.list_all(conn)
                if m.venue_id == venue_id and m.status in _ACTIVE_STATUSES
            ]
            if booked:
                raise ConflictError(f"Venue {venue_id} is booked for match {booked[0].id}")
            self._venue_repo.delete(conn, venue_id)
        logger.info("Venue %s deleted", venue_id)


# ---------- Players ----------


class PlayerService:
    """Squad members. Jersey numbers are unique within a team."""

    def __init__(self) -> None:
        self._player_repo = PlayerRepository()
        self._team_repo = TeamRepository()

    @staticmethod
    def _validate_position(position: Any) -> str | None:
        if position is None:
            return None
        try:
            return PlayerPosition(position).value
        except ValueError:
            raise InvalidInputError(f"Unknown player position: {position}") from None

    @staticmethod
    def _validate_non_negative(value: Any, label: str, positive: bool = False) -> int:
        floor = 1 if positive else 0
        if isinstance(value, bool) or not isinstance(value, int) or value < floor:
            raise InvalidInputError(f"{label} must be an integer >= {floor}, got {value}")
        return value

    def _require_team(self, conn: sqlite3.Connection, team_id: str) -> None:
        if not self._team_repo.exists(conn, team_id):
            raise NotFoundError("Team", team_id)

    def _require_free_jersey(
        self, conn: sqlite3.Connection, team_id: str, jersey_number: int | None, player_id: str | None = None
    ) -> None:
        if jersey_number is not None and self._player_repo.jersey_taken(conn, team_id, jersey_number, player_id):
            raise ConflictError(f"Jersey number {jersey_number} is already taken in team {team_id}")

    def get_player(self, conn: sqlite3.Connection, player_id: str) -> Player:
        player = self._player_repo.get(conn, player_id)
        if player is None:
            raise NotFoundError("Player", player_id)
        return player

    def list_players(
        self,
        conn: sqlite3.Connection,
        team_id: str | None = None,
        position: str | None = None,
    ) -> list[Player]:
        players = (
            self._player_repo.list_by_team(conn, team_id) if team_id is not None
            else self._player_repo.list_all(conn)
        )
        if position is not None:
            wanted = self._validate_position(position)
            players = [p for p in players if p.position == wanted]
        return players

    def top_scorers(self, conn: sqlite3.Connection, limit: int | None = None) -> list[Player]:
        players = sorted(self._player_repo.list_all(conn), key=lambda p: -p.goals_scored)
        return players[:limit] if limit is not None else players

    def create_player(
        self,
        conn: sqlite3.Connection,
        name: str,
        team_id: str,
        age: int,
        position: str | None = None,
        jersey_number: int | None = None,
    ) -> Player:
        name = _required_text(name, "Player name")
        age = self._validate_non_negative(age, "Age", positive=True)
        position = self._validate_position(position)
        if jersey_number is not None:
            jersey_number = self._validate_non_negative(jersey_number, "Jersey number", positive=True)
        with transaction(conn):
            self._require_team(conn, team_id)
            self._require_free_jersey(conn, team_id, jersey_number)
            player = self._player_repo.create(
                conn, name, team_id, age, position=position, jersey_number=jersey_number
            )
        return player

    def update_player(self, conn: sqlite3.Connection, player_id: str, fields: dict[str, Any]) -> Player:
        _check_fields(fields, {"name", "team_id", "position", "jersey_number", "age", "goals_scored"}, "player")
        with transaction(conn):
            player = self.get_player(conn, player_id)
            if fields.get("team_id") is not None and fields["team_id"] != player.team_id:
                self._require_team(conn, fields["team_id"])
                player.team_id = fields["team_id"]
            if "jersey_number" in fields:
                jersey = fields["jersey_number"]
                if jersey is not None:
                    jersey = self._validate_non_negative(jersey, "Jersey number", positive=True)
                player.jersey_number = jersey
            self._require_free_jersey(conn, player.team_id, player.jersey_number, player.id)
            if "name" in fields:
                player.name = _required_text(fields["name"], "Player name")
            if "position" in fields:
                player.position = self._validate_position(fields["position"])
            if "age" in fields:
                player.age = self._validate_non_negative(fields["age"], "Age", positive=True)
            if "goals_scored" in fields:
                player.goals_scored = self._validate_non_negative(fields["goals_scored"], "Goals scored")
            self._player_repo.update(conn, player)
        return player

    def transfer_player(
        self,
        conn: sqlite3.Connection,
        player_id: str,
        new_team_id: str,
        new_jersey_number: int | None = None,
    ) -> Player:
        """Move a player; keeps the current jersey number unless a new one is given."""
        with transaction(conn):
            player = self.get_player(conn, player_id)
            self._require_team(conn, new_team_id)
            jersey = new_jersey_number if new_jersey_number is not None else player.jersey_number
            self._require_free_jersey(conn, new_team_id, jersey, player.id)
            player.team_id = new_team_id
            player.jersey_number = jersey
            self._player_repo.update(conn, player)
        logger.info("Player %s transferred to team %s", player_id, new_team_id)
        return player

    def score_goal(self, conn: sqlite3.Connection, player_id: str) -> Player:
        with transaction(conn):
            player = self.get_player(conn, player_id)
            player.goals_scored += 1
            self._player_repo.update(conn, player)
        return player

    def delete_player(self, conn: sqlite3.Connection, player_id: str) -> None:
        with transaction(conn):
            self.get_player(conn, player_id)
            self._player_repo.delete(conn, player_id)
