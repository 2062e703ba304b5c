"""
Tests for the standings ledger: result application, ranking, reset, manual edits.
"""
from __future__ import annotations

import pytest

from league_backend.errors import InvalidInputError, InvalidScoreError, NotFoundError
from league_backend.persistence.repositories import TeamRepository


def _positions(ledger, conn):
    return sorted(s.position for s in ledger.get_standings(conn))


def test_new_team_gets_zeroed_standing(db_conn, ledger, make_team):
    team = make_team("Ashford United")
    standing = ledger.get_by_team(db_conn, team.id)
    assert standing.position == 1
    assert standing.matches_played == 0
    assert standing.points == 0


def test_home_win_three_one(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    home, away = ledger.apply_result(db_conn, a.id, b.id, 3, 1)

    assert (home.matches_played, home.wins, home.draws, home.losses) == (1, 1, 0, 0)
    assert (home.goals_for, home.goals_against, home.goal_difference, home.points) == (3, 1, 2, 3)
    assert (away.matches_played, away.wins, away.draws, away.losses) == (1, 0, 0, 1)
    assert (away.goals_for, away.goals_against, away.goal_difference, away.points) == (1, 3, -2, 0)
    assert home.position == 1
    assert away.position == 2


def test_away_win_and_draw_points(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    home, away = ledger.apply_result(db_conn, a.id, b.id, 0, 2)
    assert (home.points, away.points) == (0, 3)
    assert away.wins == 1 and home.losses == 1

    home, away = ledger.apply_result(db_conn, a.id, b.id, 1, 1)
    assert (home.points, away.points) == (1, 4)
    assert home.draws == 1 and away.draws == 1


@pytest.mark.parametrize("hs,as_,total", [(2, 0, 3), (0, 4, 3), (2, 2, 2), (0, 0, 2)])
def test_points_awarded_per_match(db_conn, ledger, make_team, hs, as_, total):
    a = make_team("A")
    b = make_team("B")
    home, away = ledger.apply_result(db_conn, a.id, b.id, hs, as_)
    assert home.points + away.points == total


def test_team_points_mirror_standing(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    ledger.apply_result(db_conn, a.id, b.id, 1, 0)
    repo = TeamRepository()
    assert repo.get(db_conn, a.id).points == 3
    assert repo.get(db_conn, b.id).points == 0


def test_goal_difference_is_consistent(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    ledger.apply_result(db_conn, a.id, b.id, 4, 2)
    ledger.apply_result(db_conn, b.id, a.id, 3, 0)
    for s in ledger.get_standings(db_conn):
        assert s.goal_difference == s.goals_for - s.goals_against


def test_negative_score_rejected_without_change(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    with pytest.raises(InvalidScoreError):
        ledger.apply_result(db_conn, a.id, b.id, -1, 0)
    assert ledger.get_by_team(db_conn, a.id).matches_played == 0


def test_missing_standing_is_not_found(db_conn, ledger, make_team):
    a = make_team("A")
    with pytest.raises(NotFoundError):
        ledger.apply_result(db_conn, a.id, "no-such-team", 1, 0)
    assert ledger.get_by_team(db_conn, a.id).matches_played == 0


def test_ranking_uses_goal_difference_then_goals_for(db_conn, ledger, make_team):
    x = make_team("X")
    y = make_team("Y")
    z = make_team("Z")
    sx = ledger.get_by_team(db_conn, x.id)
    sy = ledger.get_by_team(db_conn, y.id)
    sz = ledger.get_by_team(db_conn, z.id)
    ledger.update_standing(db_conn, sx.id, {"points": 10, "goals_for": 12, "goals_against": 10})
    ledger.update_standing(db_conn, sy.id, {"points": 10, "goals_for": 9, "goals_against": 4})
    ledger.update_standing(db_conn, sz.id, {"points": 7, "goals_for": 20, "goals_against": 19})

    table = ledger.get_standings(db_conn)
    assert [s.team_id for s in table] == [y.id, x.id, z.id]
    assert [s.position for s in table] == [1, 2, 3]


def test_full_tie_keeps_insertion_order(db_conn, ledger, make_team):
    teams = [make_team(name) for name in ("First", "Second", "Third")]
    table = ledger.recompute_positions(db_conn)
    assert [s.team_id for s in table] == [t.id for t in teams]


def test_positions_contiguous_after_many_results(db_conn, ledger, make_team):
    teams = [make_team(f"Team {i}") for i in range(6)]
    results = [(0, 1, 2, 1), (2, 3, 0, 0), (4, 5, 1, 3), (1, 2, 2, 2), (3, 4, 5, 0)]
    for h, a, hs, as_ in results:
        ledger.apply_result(db_conn, teams[h].id, teams[a].id, hs, as_)
        assert _positions(ledger, db_conn) == list(range(1, 7))


def test_position_of_matches_table(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    ledger.apply_result(db_conn, b.id, a.id, 1, 0)
    assert ledger.position_of(db_conn, b.id) == 1
    assert ledger.position_of(db_conn, a.id) == 2
    with pytest.raises(NotFoundError):
        ledger.position_of(db_conn, "missing")


def test_reset_all_zeroes_everything(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    ledger.apply_result(db_conn, a.id, b.id, 2, 1)
    assert ledger.reset_all(db_conn) == 2
    for s in ledger.get_standings(db_conn):
        assert (s.position, s.matches_played, s.points, s.goals_for, s.goal_difference) == (0, 0, 0, 0, 0)
    assert TeamRepository().get(db_conn, a.id).points == 0


def test_create_for_team_is_idempotent(db_conn, ledger, make_team):
    a = make_team("A")
    first = ledger.get_by_team(db_conn, a.id)
    again = ledger.create_for_team(db_conn, a.id)
    assert again.id == first.id
    with pytest.raises(NotFoundError):
        ledger.create_for_team(db_conn, "missing")


def test_update_standing_rejects_bad_fields(db_conn, ledger, make_team):
    a = make_team("A")
    standing = ledger.get_by_team(db_conn, a.id)
    with pytest.raises(InvalidInputError):
        ledger.update_standing(db_conn, standing.id, {"points": -3})
    with pytest.raises(InvalidInputError):
        ledger.update_standing(db_conn, standing.id, {"position": 4})
    with pytest.raises(NotFoundError):
        ledger.update_standing(db_conn, "missing", {"points": 1})


def test_delete_for_team_closes_gap(db_conn, ledger, make_team):
    a = make_team("A")
    b = make_team("B")
    c = make_team("C")
    ledger.apply_result(db_conn, a.id, c.id, 1, 0)
    assert ledger.delete_for_team(db_conn, a.id) is True
    assert _positions(ledger, db_conn) == [1, 2]
    assert ledger.delete_for_team(db_conn, a.id) is False
    assert {s.team_id for s in ledger.get_standings(db_conn)} == {b.id, c.id}


def test_get_top_limits_rows(db_conn, ledger, make_team):
    for name in ("A", "B", "C"):
        make_team(name)
    assert len(ledger.get_top(db_conn, 2)) == 2
    assert len(ledger.get_top(db_conn, None)) == 3
