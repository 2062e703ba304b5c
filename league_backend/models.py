"""
Data models for the league backend.
Domain objects only; no persistence or API logic.

The league is a single round-robin table: teams play matches at venues,
and each team owns exactly one Standing derived from its finished matches.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


# ---------- Scheduling / scoring constants ----------
MATCH_DURATION = timedelta(hours=2)  # conflict window length
ROUND_SPACING = timedelta(hours=3)  # gap between kickoffs within a round
START_LEAD_TIME = timedelta(hours=1)  # earliest a match may start before kickoff

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


# ---------- Match status (state machine) ----------
class MatchStatus(str, Enum):
    """Match lifecycle: scheduled → in_progress → finished; cancelled from the first two."""
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({MatchStatus.FINISHED, MatchStatus.CANCELLED})


class SurfaceType(str, Enum):
    GRASS = "GRASS"
    ARTIFICIAL_TURF = "ARTIFICIAL_TURF"
    HYBRID = "HYBRID"


class PlayerPosition(str, Enum):
    GOALKEEPER = "GOALKEEPER"
    DEFENDER = "DEFENDER"
    MIDFIELDER = "MIDFIELDER"
    FORWARD = "FORWARD"


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


def to_utc_naive(value: datetime) -> datetime:
    """Kickoffs are compared as naive UTC; aware values are converted first."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ---------- User ----------
@dataclass
class User:
    """
    An account allowed to mutate league data.
    password_hash is never serialised.
    """
    id: str
    username: str
    password_hash: str
    role: str  # UserRole value
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Team ----------
@dataclass
class Team:
    """
    A club in the league. Name is unique across all teams.
    points mirrors the team's Standing.points and is only written by the standings ledger.
    """
    id: str
    name: str
    city: str | None
    coach: str | None
    founded_year: int | None
    points: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "coach": self.coach,
            "founded_year": self.founded_year,
            "points": self.points,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Venue ----------
@dataclass
class Venue:
    id: str
    name: str
    city: str
    capacity: int
    surface: str | None  # SurfaceType value
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "city": self.city,
            "capacity": self.capacity,
            "surface": self.surface,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Player ----------
@dataclass
class Player:
    """A squad member. Jersey numbers are unique within a team."""
    id: str
    name: str
    team_id: str
    position: str | None  # PlayerPosition value
    jersey_number: int | None
    age: int
    goals_scored: int
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "team_id": self.team_id,
            "position": self.position,
            "jersey_number": self.jersey_number,
            "age": self.age,
            "goals_scored": self.goals_scored,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Match ----------
@dataclass
class Match:
    """
    A fixture between two different teams, optionally at a venue.
    home_score and away_score are both set or both None.
    """
    id: str
    home_team_id: str
    away_team_id: str
    venue_id: str | None
    kickoff: datetime  # naive UTC
    home_score: int | None
    away_score: int | None
    status: str  # MatchStatus value
    created_at: datetime

    @property
    def has_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None

    def involves(self, team_id: str) -> bool:
        return team_id in (self.home_team_id, self.away_team_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "home_team_id": self.home_team_id,
            "away_team_id": self.away_team_id,
            "venue_id": self.venue_id,
            "kickoff": self.kickoff.isoformat(),
            "home_score": self.home_score,
            "away_score": self.away_score,
            "status": self.status,
            "created_at": self.created_at.isoformat(),
        }


# ---------- Standing ----------
@dataclass
class Standing:
    """
    Per-team aggregate row of the league table.
    goal_difference is always goals_for - goals_against; position is 1-based
    and contiguous across the table after every recompute (0 after a reset).
    """
    id: str
    team_id: str
    position: int
    matches_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0
    points: int = 0

    def ranking_key(self) -> tuple[int, int, int]:
        """Sort key: points, goal difference, goals for (all descending)."""
        return (-self.points, -self.goal_difference, -self.goals_for)

    def recompute_goal_difference(self) -> None:
        self.goal_difference = self.goals_for - self.goals_against

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "position": self.position,
            "matches_played": self.matches_played,
            "wins": self.wins,
            "draws": self.draws,
            "losses": self.losses,
            "goals_for": self.goals_for,
            "goals_against": self.goals_against,
            "goal_difference": self.goal_difference,
            "points": self.points,
        }
