"""
Season-level operations: reset, statistics, venue availability, awards.
Statistics are computed from FINISHED matches, never from the standings rows,
so they stay correct after a manual standings correction.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import date, datetime, time, timedelta
from typing import Any

from league_backend.errors import InvalidInputError, InvalidTransitionError, NotFoundError
from league_backend.models import MatchStatus, Player, Venue
from league_backend.persistence.db import transaction
from league_backend.persistence.repositories import (
    MatchRepository,
    PlayerRepository,
    TeamRepository,
    VenueRepository,
)
from league_backend.services.standings_ledger import StandingsLedger, standings_lock

logger = logging.getLogger(__name__)


class TournamentService:
    """Orchestrates ledger, matches and registry reads for season-wide views."""

    def __init__(self) -> None:
        self._ledger = StandingsLedger()
        self._match_repo = MatchRepository()
        self._team_repo = TeamRepository()
        self._player_repo = PlayerRepository()
        self._venue_repo = VenueRepository()

    def reset_season(self, conn: sqlite3.Connection, clear_pending: bool = False) -> dict[str, int]:
        """
        Zero the table. With clear_pending, also delete every match that is not
        FINISHED. Finished matches are kept as history.
        """
        with standings_lock(), transaction(conn):
            reset = self._ledger.reset_all(conn)
            removed = self._match_repo.delete_unfinished(conn) if clear_pending else 0
        logger.info("Season reset: %d standings zeroed, %d pending matches removed", reset, removed)
        return {"standings_reset": reset, "matches_removed": removed}

    def team_statistics(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Any]:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError("Team", team_id)
        finished = self._match_repo.list_all(conn, status=MatchStatus.FINISHED.value, team_id=team_id)

        wins = draws = losses = goals_for = goals_against = clean_sheets = 0
        home_wins = away_wins = 0
        for m in finished:
            is_home = m.home_team_id == team_id
            scored = m.home_score if is_home else m.away_score
            conceded = m.away_score if is_home else m.home_score
            goals_for += scored
            goals_against += conceded
            if conceded == 0:
                clean_sheets += 1
            if scored > conceded:
                wins += 1
                if is_home:
                    home_wins += 1
                else:
                    away_wins += 1
            elif scored == conceded:
                draws += 1
            else:
                losses += 1

        played = len(finished)
        players = self._player_repo.list_by_team(conn, team_id)
        top_scorer = max(players, key=lambda p: p.goals_scored, default=None)
        return {
            "team_id": team_id,
            "name": team.name,
            "matches_played": played,
            "wins": wins,
            "draws": draws,
            "losses": losses,
            "home_wins": home_wins,
            "away_wins": away_wins,
            "goals_for": goals_for,
            "goals_against": goals_against,
            "goal_difference": goals_for - goals_against,
            "clean_sheets": clean_sheets,
            "win_rate": round(wins / played, 3) if played else 0.0,
            "squad_size": len(players),
            "top_scorer": top_scorer.to_dict() if top_scorer is not None and top_scorer.goals_scored > 0 else None,
        }

    def league_statistics(self, conn: sqlite3.Connection) -> dict[str, Any]:
        matches = self._match_repo.list_all(conn)
        finished = [m for m in matches if m.status == MatchStatus.FINISHED]
        total_goals = sum(m.home_score + m.away_score for m in finished)
        by_status = {s.value: 0 for s in MatchStatus}
        for m in matches:
            by_status[m.status] += 1

        standings = self._ledger.get_standings(conn)
        played = [s for s in standings if s.matches_played > 0]
        best_attack = max(played, key=lambda s: s.goals_for, default=None)
        best_defense = min(played, key=lambda s: s.goals_against, default=None)
        return {
            "teams": len(standings),
            "matches": len(matches),
            "matches_by_status": by_status,
            "total_goals": total_goals,
            "average_goals_per_match": round(total_goals / len(finished), 2) if finished else 0.0,
            "home_wins": sum(1 for m in finished if m.home_score > m.away_score),
            "away_wins": sum(1 for m in finished if m.home_score < m.away_score),
            "draws": sum(1 for m in finished if m.home_score == m.away_score),
            "leader_team_id": standings[0].team_id if standings and standings[0].position == 1 else None,
            "best_attack_team_id": best_attack.team_id if best_attack else None,
            "best_defense_team_id": best_defense.team_id if best_defense else None,
        }

    def available_venues(self, conn: sqlite3.Connection, day: date | datetime) -> list[Venue]:
        """Venues with no scheduled or in-progress match kicking off on the given UTC day."""
        if isinstance(day, datetime):
            day = day.date()
        start = datetime.combine(day, time.min)
        busy = {
            m.venue_id
            for m in self._match_repo.list_between(conn, start, start + timedelta(days=1))
            if m.venue_id is not None and m.status in (MatchStatus.SCHEDULED, MatchStatus.IN_PROGRESS)
        }
        return [v for v in self._venue_repo.list_all(conn) if v.id not in busy]

    def award_man_of_the_match(self, conn: sqlite3.Connection, match_id: str, player_id: str) -> Player:
        """Credit a goal to a player of either side of a finished match."""
        with transaction(conn):
            match = self._match_repo.get(conn, match_id)
            if match is None:
                raise NotFoundError("Match", match_id)
            if match.status != MatchStatus.FINISHED:
                raise InvalidTransitionError(match.status, match.status, "man of the match needs a finished match")
            player = self._player_repo.get(conn, player_id)
            if player is None:
                raise NotFoundError("Player", player_id)
            if not match.involves(player.team_id):
                raise InvalidInputError(f"Player {player_id} did not play in match {match_id}")
            player.goals_scored += 1
            self._player_repo.update(conn, player)
        logger.info("Man of the match %s awarded for match %s", player_id, match_id)
        return player
