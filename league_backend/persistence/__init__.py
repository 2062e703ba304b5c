"""
Persistence layer for league data.
No business logic; only read/write interfaces and the transaction boundary.
"""
from .db import get_connection, init_db, set_db_path, transaction
from .repositories import (
    UserRepository,
    TeamRepository,
    VenueRepository,
    PlayerRepository,
    MatchRepository,
    StandingRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "set_db_path",
    "transaction",
    "UserRepository",
    "TeamRepository",
    "VenueRepository",
    "PlayerRepository",
    "MatchRepository",
    "StandingRepository",
]
