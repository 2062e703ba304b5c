"""
REST API for the league backend.
Thin wrappers around the services; every domain error is mapped by one handler.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager, contextmanager
from datetime import date, datetime
from typing import Any, AsyncGenerator, Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from league_backend.auth import (
    admin_usernames,
    create_access_token,
    decode_token,
    hash_password,
    verify_password,
)
from league_backend.errors import ConflictError, LeagueError
from league_backend.models import User, UserRole
from league_backend.persistence import UserRepository, get_connection, init_db
from league_backend.persistence.db import get_db_path, transaction
from league_backend.services import (
    MatchLifecycle,
    PlayerService,
    RoundScheduler,
    StandingsLedger,
    TeamService,
    TournamentService,
    VenueService,
)

logger = logging.getLogger(__name__)


@contextmanager
def db_conn() -> Generator:
    """Yield a DB connection, ensure close on exit."""
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()


def _cors_origins() -> list[str]:
    raw = os.environ.get("LEAGUE_CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173")
    return [o.strip() for o in raw.split(",") if o.strip()]


# ---------- Lifespan ----------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logging.basicConfig(
        level=os.environ.get("LEAGUE_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_db(db_path=get_db_path())
    logger.info("League API ready (db=%s)", get_db_path())
    yield


# ---------- FastAPI app ----------
app = FastAPI(
    title="League API",
    description="Teams, venues, match scheduling and the league table",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

lifecycle = MatchLifecycle()
scheduler = RoundScheduler(lifecycle)
ledger = StandingsLedger()
team_service = TeamService()
venue_service = VenueService()
player_service = PlayerService()
tournament_service = TournamentService()


@app.exception_handler(LeagueError)
async def league_error_handler(request: Request, exc: LeagueError) -> JSONResponse:
    content: dict[str, Any] = {"detail": str(exc), "kind": exc.kind}
    created = getattr(exc, "created_matches", None)
    if created is not None:
        # partial round: earlier pairs were kept
        content["created_match_ids"] = [m.id for m in created]
        content["pair_count"] = getattr(exc, "pair_count", None)
    return JSONResponse(status_code=exc.http_status, content=content)


# ---------- Request models ----------

security = HTTPBearer(auto_error=False)


class SignupRequest(BaseModel):
    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=6)


class LoginRequest(BaseModel):
    username: str
    password: str


class TeamCreateRequest(BaseModel):
    name: str
    city: str | None = None
    coach: str | None = None
    founded_year: int | None = None


class TeamUpdateRequest(BaseModel):
    name: str | None = None
    city: str | None = None
    coach: str | None = None
    founded_year: int | None = None


class VenueCreateRequest(BaseModel):
    name: str
    city: str
    capacity: int
    surface: str | None = Field(None, description="GRASS, ARTIFICIAL_TURF or HYBRID")


class VenueUpdateRequest(BaseModel):
    name: str | None = None
    city: str | None = None
    capacity: int | None = None
    surface: str | None = None


class PlayerCreateRequest(BaseModel):
    name: str
    team_id: str
    age: int
    position: str | None = Field(None, description="GOALKEEPER, DEFENDER, MIDFIELDER or FORWARD")
    jersey_number: int | None = None


class PlayerUpdateRequest(BaseModel):
    name: str | None = None
    team_id: str | None = None
    age: int | None = None
    position: str | None = None
    jersey_number: int | None = None
    goals_scored: int | None = None


class TransferRequest(BaseModel):
    team_id: str
    jersey_number: int | None = None


class MatchCreateRequest(BaseModel):
    home_team_id: str
    away_team_id: str
    kickoff: datetime = Field(..., description="ISO-8601; aware values are converted to UTC")
    venue_id: str | None = None


class MatchUpdateRequest(BaseModel):
    home_team_id: str | None = None
    away_team_id: str | None = None
    venue_id: str | None = None
    kickoff: datetime | None = None
    home_score: int | None = None
    away_score: int | None = None
    status: str | None = None


class CompleteMatchRequest(BaseModel):
    home_score: int | None = None
    away_score: int | None = None


class RoundRequest(BaseModel):
    team_ids: list[str]
    round_start: datetime
    venue_id: str | None = None


class StandingUpdateRequest(BaseModel):
    matches_played: int | None = None
    wins: int | None = None
    draws: int | None = None
    losses: int | None = None
    goals_for: int | None = None
    goals_against: int | None = None
    points: int | None = None


class SeasonResetRequest(BaseModel):
    clear_pending_matches: bool = False


# ---------- Auth dependencies ----------


def _get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(security)) -> User:
    """Resolve the bearer token to a stored user or answer 401."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Login required")
    user_id = decode_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    with db_conn() as conn:
        user = UserRepository().get(conn, user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Unknown user")
    return user


def _require_admin(user: User = Depends(_get_current_user)) -> User:
    if user.role != UserRole.ADMIN:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


# ---------- Users ----------


@app.post("/signup")
def signup(req: SignupRequest) -> dict[str, Any]:
    """Create an account and return a token. Passwords are hashed, never stored plain."""
    role = UserRole.ADMIN.value if req.username in admin_usernames() else UserRole.USER.value
    with db_conn() as conn:
        user_repo = UserRepository()
        with transaction(conn):
            if user_repo.get_by_username(conn, req.username):
                raise ConflictError(f"Username already taken: {req.username}")
            user = user_repo.create(conn, req.username, hash_password(req.password), role=role)
    token = create_access_token(user.id, user.role)
    return {"user_id": user.id, "username": user.username, "role": user.role, "token": token}


@app.post("/login")
def login(req: LoginRequest) -> dict[str, Any]:
    with db_conn() as conn:
        user = UserRepository().get_by_username(conn, req.username)
    if user is None or not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid username or password")
    token = create_access_token(user.id, user.role)
    return {"user_id": user.id, "username": user.username, "role": user.role, "token": token}


@app.get("/me")
def me(user: User = Depends(_get_current_user)) -> dict[str, Any]:
    return user.to_dict()


# ---------- Teams ----------


@app.get("/teams")
def list_teams(city: str | None = None) -> dict[str, Any]:
    with db_conn() as conn:
        return {"teams": [t.to_dict() for t in team_service.list_teams(conn, city=city)]}


@app.post("/teams", status_code=201)
def create_team(req: TeamCreateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    """Create a team; its standing is created in the same transaction."""
    with db_conn() as conn:
        team = team_service.create_team(
            conn, req.name, city=req.city, coach=req.coach, founded_year=req.founded_year
        )
        standing = ledger.get_by_team(conn, team.id)
        return {**team.to_dict(), "standing": standing.to_dict()}


@app.get("/teams/{team_id}")
def get_team(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return team_service.get_team(conn, team_id).to_dict()


@app.patch("/teams/{team_id}")
def update_team(team_id: str, req: TeamUpdateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return team_service.update_team(conn, team_id, req.model_dump(exclude_unset=True)).to_dict()


@app.delete("/teams/{team_id}")
def delete_team(team_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        team_service.delete_team(conn, team_id)
    return {"id": team_id, "deleted": True}


@app.get("/teams/{team_id}/statistics")
def team_statistics(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return tournament_service.team_statistics(conn, team_id)


# ---------- Venues ----------


@app.get("/venues")
def list_venues() -> dict[str, Any]:
    with db_conn() as conn:
        return {"venues": [v.to_dict() for v in venue_service.list_venues(conn)]}


@app.get("/venues/available")
def available_venues(day: date = Query(..., alias="date", description="YYYY-MM-DD (UTC)")) -> dict[str, Any]:
    with db_conn() as conn:
        venues = tournament_service.available_venues(conn, day)
    return {"date": day.isoformat(), "venues": [v.to_dict() for v in venues]}


@app.post("/venues", status_code=201)
def create_venue(req: VenueCreateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        venue = venue_service.create_venue(conn, req.name, req.city, req.capacity, surface=req.surface)
        return venue.to_dict()


@app.get("/venues/{venue_id}")
def get_venue(venue_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return venue_service.get_venue(conn, venue_id).to_dict()


@app.patch("/venues/{venue_id}")
def update_venue(venue_id: str, req: VenueUpdateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return venue_service.update_venue(conn, venue_id, req.model_dump(exclude_unset=True)).to_dict()


@app.delete("/venues/{venue_id}")
def delete_venue(venue_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        venue_service.delete_venue(conn, venue_id)
    return {"id": venue_id, "deleted": True}


# ---------- Players ----------


@app.get("/players")
def list_players(team_id: str | None = None, position: str | None = None) -> dict[str, Any]:
    with db_conn() as conn:
        players = player_service.list_players(conn, team_id=team_id, position=position)
        return {"players": [p.to_dict() for p in players]}


@app.get("/players/top-scorers")
def top_scorers(limit: int = Query(default=10, ge=1, le=100)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"players": [p.to_dict() for p in player_service.top_scorers(conn, limit)]}


@app.post("/players", status_code=201)
def create_player(req: PlayerCreateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        player = player_service.create_player(
            conn, req.name, req.team_id, req.age, position=req.position, jersey_number=req.jersey_number
        )
        return player.to_dict()


@app.get("/players/{player_id}")
def get_player(player_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return player_service.get_player(conn, player_id).to_dict()


@app.patch("/players/{player_id}")
def update_player(player_id: str, req: PlayerUpdateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return player_service.update_player(conn, player_id, req.model_dump(exclude_unset=True)).to_dict()


@app.delete("/players/{player_id}")
def delete_player(player_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        player_service.delete_player(conn, player_id)
    return {"id": player_id, "deleted": True}


@app.post("/players/{player_id}/transfer")
def transfer_player(player_id: str, req: TransferRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return player_service.transfer_player(conn, player_id, req.team_id, req.jersey_number).to_dict()


@app.post("/players/{player_id}/goals")
def score_goal(player_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return player_service.score_goal(conn, player_id).to_dict()


# ---------- Matches ----------


@app.get("/matches")
def list_matches(status: str | None = None, team_id: str | None = None) -> dict[str, Any]:
    with db_conn() as conn:
        matches = lifecycle.list_matches(conn, status=status, team_id=team_id)
        return {"matches": [m.to_dict() for m in matches]}


@app.post("/matches", status_code=201)
def create_match(req: MatchCreateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        match = lifecycle.create_match(
            conn, req.home_team_id, req.away_team_id, req.kickoff, venue_id=req.venue_id
        )
        return match.to_dict()


@app.get("/matches/{match_id}")
def get_match(match_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return lifecycle.get_match(conn, match_id).to_dict()


@app.patch("/matches/{match_id}")
def update_match(match_id: str, req: MatchUpdateRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    """Partial update; only fields present in the body are applied."""
    with db_conn() as conn:
        return lifecycle.update_match(conn, match_id, req.model_dump(exclude_unset=True)).to_dict()


@app.delete("/matches/{match_id}")
def delete_match(match_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        lifecycle.delete_match(conn, match_id)
    return {"id": match_id, "deleted": True}


@app.post("/matches/{match_id}/start")
def start_match(match_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return lifecycle.start_match(conn, match_id).to_dict()


@app.post("/matches/{match_id}/complete")
def complete_match(match_id: str, req: CompleteMatchRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        match = lifecycle.complete_match(conn, match_id, req.home_score, req.away_score)
        return match.to_dict()


@app.post("/matches/{match_id}/cancel")
def cancel_match(match_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        return lifecycle.cancel_match(conn, match_id).to_dict()


@app.post("/matches/{match_id}/man-of-the-match/{player_id}")
def man_of_the_match(match_id: str, player_id: str, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    with db_conn() as conn:
        player = tournament_service.award_man_of_the_match(conn, match_id, player_id)
        return {"match_id": match_id, "player": player.to_dict()}


@app.post("/schedule/round", status_code=201)
def schedule_round(req: RoundRequest, user: User = Depends(_get_current_user)) -> dict[str, Any]:
    """One match per consecutive pair of team_ids; a failing pair keeps earlier matches."""
    with db_conn() as conn:
        matches = scheduler.generate_round(conn, req.team_ids, req.round_start, req.venue_id)
        return {"matches": [m.to_dict() for m in matches]}


# ---------- Standings ----------


@app.get("/standings")
def get_standings(limit: int | None = Query(default=None, ge=1)) -> dict[str, Any]:
    with db_conn() as conn:
        return {"standings": [s.to_dict() for s in ledger.get_top(conn, limit)]}


@app.get("/standings/statistics")
def league_statistics() -> dict[str, Any]:
    with db_conn() as conn:
        return tournament_service.league_statistics(conn)


@app.get("/standings/team/{team_id}")
def get_team_standing(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return ledger.get_by_team(conn, team_id).to_dict()


@app.get("/standings/team/{team_id}/position")
def get_team_position(team_id: str) -> dict[str, Any]:
    with db_conn() as conn:
        return {"team_id": team_id, "position": ledger.position_of(conn, team_id)}


@app.patch("/standings/{standing_id}")
def update_standing(
    standing_id: str, req: StandingUpdateRequest, user: User = Depends(_get_current_user)
) -> dict[str, Any]:
    """Manual correction of counters; goal difference and positions are recomputed."""
    with db_conn() as conn:
        return ledger.update_standing(conn, standing_id, req.model_dump(exclude_unset=True)).to_dict()


@app.post("/season/reset")
def reset_season(req: SeasonResetRequest | None = None, admin: User = Depends(_require_admin)) -> dict[str, Any]:
    clear = req.clear_pending_matches if req is not None else False
    with db_conn() as conn:
        result = tournament_service.reset_season(conn, clear_pending=clear)
    logger.info("Season reset by %s", admin.username)
    return result


# ---------- Run with: uvicorn league_backend.api:app --reload ----------
