"""
Closed error taxonomy for the league core.

Callers branch on the exception class (or its ``kind``), never on message text.
The API layer maps ``http_status`` onto the response.
"""
from __future__ import annotations


class LeagueError(ValueError):
    """Base class for every error surfaced by the league services."""

    kind = "LeagueError"
    http_status = 400


class NotFoundError(LeagueError):
    """Referenced Team/Venue/Match/Standing/Player id does not exist."""

    kind = "NotFound"
    http_status = 404

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidInputError(LeagueError):
    """Structurally invalid request (odd team list, self-play, bad capacity...)."""

    kind = "InvalidInput"


class InvalidScoreError(LeagueError):
    """Missing or negative score where a score is required."""

    kind = "InvalidScore"


class InvalidTransitionError(LeagueError):
    """Requested state change is not reachable from the current match status."""

    kind = "InvalidTransition"
    http_status = 409

    def __init__(self, current: str, requested: str, detail: str | None = None):
        self.current = current
        self.requested = requested
        msg = f"Invalid transition: {current} -> {requested}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)


class NotReadyError(LeagueError):
    """A temporal guard failed, e.g. starting a match too early."""

    kind = "NotReady"
    http_status = 409


class ConflictError(LeagueError):
    """Scheduling overlap, duplicate unique field, or delete-while-in-progress."""

    kind = "Conflict"
    http_status = 409
