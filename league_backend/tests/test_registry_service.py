"""
Tests for team, venue and player registries.
"""
from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from league_backend.errors import ConflictError, InvalidInputError, NotFoundError
from league_backend.models import MatchStatus
from league_backend.persistence.repositories import PlayerRepository, StandingRepository


# ---------- Teams ----------


def test_create_team_creates_standing(db_conn, team_service, ledger):
    team = team_service.create_team(db_conn, "  Harbour City  ", city="Dover", coach="R. Grant", founded_year=1901)
    assert team.name == "Harbour City"
    assert team.points == 0
    assert ledger.get_by_team(db_conn, team.id).position == 1


def test_team_name_required_and_unique(db_conn, team_service, make_team):
    make_team("Harbour City")
    with pytest.raises(ConflictError):
        team_service.create_team(db_conn, "Harbour City")
    with pytest.raises(InvalidInputError):
        team_service.create_team(db_conn, "   ")
    assert StandingRepository().count(db_conn) == 1


def test_team_founded_year_validated(db_conn, team_service):
    with pytest.raises(InvalidInputError):
        team_service.create_team(db_conn, "Future FC", founded_year=datetime.now().year + 5)


def test_update_team(db_conn, team_service, make_team):
    a = make_team("A")
    make_team("B")
    updated = team_service.update_team(db_conn, a.id, {"coach": "New Coach", "city": "York"})
    assert (updated.coach, updated.city) == ("New Coach", "York")
    with pytest.raises(ConflictError):
        team_service.update_team(db_conn, a.id, {"name": "B"})
    with pytest.raises(InvalidInputError):
        team_service.update_team(db_conn, a.id, {"points": 99})
    assert team_service.update_team(db_conn, a.id, {"name": "A"}).name == "A"


def test_list_teams_by_city(db_conn, team_service, make_team):
    make_team("A", city="York")
    make_team("B", city="Hull")
    assert [t.name for t in team_service.list_teams(db_conn, city="York")] == ["A"]
    assert len(team_service.list_teams(db_conn)) == 2


def test_delete_team_removes_standing_and_players(db_conn, team_service, player_service, ledger, make_team, play):
    a = make_team("A")
    b = make_team("B")
    c = make_team("C")
    play(a, c, 2, 0)
    player_service.create_player(db_conn, "Striker", a.id, 24, jersey_number=9)

    team_service.delete_team(db_conn, a.id)
    with pytest.raises(NotFoundError):
        team_service.get_team(db_conn, a.id)
    assert PlayerRepository().list_by_team(db_conn, a.id) == []
    table = ledger.get_standings(db_conn)
    assert {s.team_id for s in table} == {b.id, c.id}
    assert sorted(s.position for s in table) == [1, 2]


def test_delete_team_in_progress_rejected(db_conn, team_service, lifecycle, make_team, clock):
    a = make_team("A")
    b = make_team("B")
    match = lifecycle.create_match(db_conn, a.id, b.id, clock.now)
    lifecycle.start_match(db_conn, match.id)
    with pytest.raises(ConflictError):
        team_service.delete_team(db_conn, a.id)
    assert team_service.get_team(db_conn, a.id).id == a.id


def test_delete_team_cancels_its_scheduled_matches(db_conn, team_service, lifecycle, make_team, play, clock):
    a = make_team("A")
    b = make_team("B")
    c = make_team("C")
    finished = play(a, b, 1, 0)
    pending = lifecycle.create_match(db_conn, a.id, c.id, clock.now + timedelta(days=7))
    unrelated = lifecycle.create_match(db_conn, b.id, c.id, clock.now + timedelta(days=14))

    team_service.delete_team(db_conn, a.id)

    assert lifecycle.get_match(db_conn, pending.id).status == MatchStatus.CANCELLED
    assert lifecycle.get_match(db_conn, finished.id).status == MatchStatus.FINISHED
    assert lifecycle.get_match(db_conn, unrelated.id).status == MatchStatus.SCHEDULED
    assert lifecycle.list_matches(db_conn, status="SCHEDULED", team_id=a.id) == []


# ---------- Venues ----------


def test_create_venue_validation(db_conn, venue_service):
    with pytest.raises(InvalidInputError):
        venue_service.create_venue(db_conn, "Zero Park", "Leeds", 0)
    with pytest.raises(InvalidInputError):
        venue_service.create_venue(db_conn, "No City Park", "", 500)
    with pytest.raises(InvalidInputError):
        venue_service.create_venue(db_conn, "Ice Rink", "Leeds", 500, surface="ICE")
    assert venue_service.list_venues(db_conn) == []


def test_venue_name_unique(db_conn, venue_service, venue):
    with pytest.raises(ConflictError):
        venue_service.create_venue(db_conn, venue.name, "Bradford", 800)


def test_update_venue(db_conn, venue_service, venue):
    updated = venue_service.update_venue(db_conn, venue.id, {"capacity": 15000, "surface": "HYBRID"})
    assert (updated.capacity, updated.surface) == (15000, "HYBRID")
    with pytest.raises(InvalidInputError):
        venue_service.update_venue(db_conn, venue.id, {"capacity": -1})
    assert venue_service.get_venue(db_conn, venue.id).capacity == 15000


def test_delete_booked_venue_rejected(db_conn, venue_service, lifecycle, make_team, venue, clock):
    a = make_team("A")
    b = make_team("B")
    match = lifecycle.create_match(db_conn, a.id, b.id, clock.now, venue_id=venue.id)
    with pytest.raises(ConflictError):
        venue_service.delete_venue(db_conn, venue.id)
    lifecycle.cancel_match(db_conn, match.id)
    venue_service.delete_venue(db_conn, venue.id)
    with pytest.raises(NotFoundError):
        venue_service.get_venue(db_conn, venue.id)


# ---------- Players ----------


def test_create_player(db_conn, player_service, make_team):
    a = make_team("A")
    player = player_service.create_player(db_conn, "Keeper", a.id, 31, position="GOALKEEPER", jersey_number=1)
    assert (player.team_id, player.position, player.goals_scored) == (a.id, "GOALKEEPER", 0)


def test_create_player_validation(db_conn, player_service, make_team):
    a = make_team("A")
    with pytest.raises(NotFoundError):
        player_service.create_player(db_conn, "Nobody", "ghost", 20)
    with pytest.raises(InvalidInputError):
        player_service.create_player(db_conn, "Baby", a.id, 0)
    with pytest.raises(InvalidInputError):
        player_service.create_player(db_conn, "Coach", a.id, 40, position="MANAGER")


def test_jersey_unique_per_team(db_conn, player_service, make_team):
    a = make_team("A")
    b = make_team("B")
    player_service.create_player(db_conn, "First Nine", a.id, 22, jersey_number=9)
    with pytest.raises(ConflictError):
        player_service.create_player(db_conn, "Second Nine", a.id, 23, jersey_number=9)
    player_service.create_player(db_conn, "Other Nine", b.id, 23, jersey_number=9)


def test_transfer_player(db_conn, player_service, make_team):
    a = make_team("A")
    b = make_team("B")
    mover = player_service.create_player(db_conn, "Mover", a.id, 25, jersey_number=7)
    player_service.create_player(db_conn, "Incumbent", b.id, 27, jersey_number=7)
    with pytest.raises(ConflictError):
        player_service.transfer_player(db_conn, mover.id, b.id)
    moved = player_service.transfer_player(db_conn, mover.id, b.id, new_jersey_number=17)
    assert (moved.team_id, moved.jersey_number) == (b.id, 17)
    assert [p.name for p in player_service.list_players(db_conn, team_id=a.id)] == []


def test_score_goal_and_top_scorers(db_conn, player_service, make_team):
    a = make_team("A")
    p1 = player_service.create_player(db_conn, "One", a.id, 20)
    p2 = player_service.create_player(db_conn, "Two", a.id, 21)
    player_service.score_goal(db_conn, p2.id)
    player_service.score_goal(db_conn, p2.id)
    player_service.score_goal(db_conn, p1.id)
    assert [p.id for p in player_service.top_scorers(db_conn, 2)] == [p2.id, p1.id]


def test_update_and_delete_player(db_conn, player_service, make_team):
    a = make_team("A")
    p = player_service.create_player(db_conn, "Winger", a.id, 19, position="MIDFIELDER")
    updated = player_service.update_player(db_conn, p.id, {"position": "FORWARD", "age": 20})
    assert (updated.position, updated.age) == ("FORWARD", 20)
    assert len(player_service.list_players(db_conn, position="FORWARD")) == 1
    player_service.delete_player(db_conn, p.id)
    with pytest.raises(NotFoundError):
        player_service.get_player(db_conn, p.id)
