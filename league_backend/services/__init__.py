"""
Service layer: domain rules, the match state machine and the standings ledger.
Services own transactions; repositories never commit.
"""
from .conflicts import ConflictChecker, team_schedule_lock
from .match_lifecycle import MatchLifecycle
from .registry_service import PlayerService, TeamService, VenueService
from .round_scheduler import RoundScheduler, round_pairings
from .standings_ledger import StandingsLedger, standings_lock
from .tournament_service import TournamentService

__all__ = [
    "ConflictChecker",
    "team_schedule_lock",
    "MatchLifecycle",
    "PlayerService",
    "TeamService",
    "VenueService",
    "RoundScheduler",
    "round_pairings",
    "StandingsLedger",
    "standings_lock",
    "TournamentService",
]
