"""
API integration tests.
Uses TestClient to avoid starting a server.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from league_backend.api import app

KICKOFF = "2030-05-04T15:00:00"


@pytest.fixture
def client(db_path):
    return TestClient(app)


@pytest.fixture
def auth(client):
    resp = client.post("/signup", json={"username": "organiser", "password": "secret123"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


@pytest.fixture
def admin_auth(client, monkeypatch):
    monkeypatch.setenv("LEAGUE_ADMIN_USERNAMES", "boss")
    resp = client.post("/signup", json={"username": "boss", "password": "secret123"})
    assert resp.json()["role"] == "ADMIN"
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _team(client, auth, name):
    resp = client.post("/teams", json={"name": name, "city": "Leeds"}, headers=auth)
    assert resp.status_code == 201
    return resp.json()


def _match(client, auth, home, away, kickoff=KICKOFF, **extra):
    body = {"home_team_id": home["id"], "away_team_id": away["id"], "kickoff": kickoff, **extra}
    return client.post("/matches", json=body, headers=auth)


# ---------- Auth ----------


def test_signup_login_me(client):
    resp = client.post("/signup", json={"username": "alice", "password": "secret123"})
    assert resp.status_code == 200
    assert resp.json()["role"] == "USER"

    assert client.post("/signup", json={"username": "alice", "password": "other123"}).status_code == 409
    assert client.post("/login", json={"username": "alice", "password": "wrong"}).status_code == 401

    token = client.post("/login", json={"username": "alice", "password": "secret123"}).json()["token"]
    me = client.get("/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["username"] == "alice"
    assert "password_hash" not in me.json()


def test_mutations_require_token(client):
    assert client.post("/teams", json={"name": "Anon FC"}).status_code == 401
    bad = {"Authorization": "Bearer not-a-token"}
    assert client.post("/teams", json={"name": "Anon FC"}, headers=bad).status_code == 401
    assert client.get("/teams").status_code == 200


def test_season_reset_requires_admin(client, auth, admin_auth):
    assert client.post("/season/reset", json={}, headers=auth).status_code == 403
    resp = client.post("/season/reset", json={"clear_pending_matches": True}, headers=admin_auth)
    assert resp.status_code == 200
    assert resp.json() == {"standings_reset": 0, "matches_removed": 0}


# ---------- Registry ----------


def test_team_crud(client, auth):
    team = _team(client, auth, "Harbour City")
    assert team["standing"]["position"] == 1

    assert client.post("/teams", json={"name": "Harbour City"}, headers=auth).status_code == 409
    assert client.post("/teams", json={"name": ""}, headers=auth).json()["kind"] == "InvalidInput"

    resp = client.patch(f"/teams/{team['id']}", json={"coach": "R. Grant"}, headers=auth)
    assert resp.json()["coach"] == "R. Grant"
    assert client.get("/teams", params={"city": "Leeds"}).json()["teams"][0]["id"] == team["id"]

    assert client.delete(f"/teams/{team['id']}", headers=auth).status_code == 200
    missing = client.get(f"/teams/{team['id']}")
    assert missing.status_code == 404
    assert missing.json()["kind"] == "NotFound"


def test_venue_routes(client, auth):
    resp = client.post("/venues", json={"name": "Park", "city": "Leeds", "capacity": 0}, headers=auth)
    assert resp.status_code == 400
    venue = client.post(
        "/venues", json={"name": "Park", "city": "Leeds", "capacity": 900, "surface": "GRASS"}, headers=auth
    ).json()
    assert client.get(f"/venues/{venue['id']}").json()["capacity"] == 900

    home = _team(client, auth, "A")
    away = _team(client, auth, "B")
    _match(client, auth, home, away, venue_id=venue["id"])
    assert client.get("/venues/available", params={"date": "2030-05-04"}).json()["venues"] == []
    assert len(client.get("/venues/available", params={"date": "2030-05-05"}).json()["venues"]) == 1


def test_player_routes(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    resp = client.post("/players", json={"name": "Nine", "team_id": a["id"], "age": 24, "jersey_number": 9}, headers=auth)
    assert resp.status_code == 201
    player = resp.json()
    dup = client.post("/players", json={"name": "Other", "team_id": a["id"], "age": 24, "jersey_number": 9}, headers=auth)
    assert dup.status_code == 409

    moved = client.post(f"/players/{player['id']}/transfer", json={"team_id": b["id"]}, headers=auth)
    assert moved.json()["team_id"] == b["id"]
    client.post(f"/players/{player['id']}/goals", headers=auth)
    assert client.get("/players/top-scorers").json()["players"][0]["goals_scored"] == 1
    assert len(client.get("/players", params={"team_id": b["id"]}).json()["players"]) == 1


# ---------- Matches & standings ----------


def test_match_lifecycle_over_http(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    resp = _match(client, auth, a, b, kickoff="2000-01-01T12:00:00")
    assert resp.status_code == 201
    match = resp.json()
    assert match["status"] == "SCHEDULED"

    assert client.post(f"/matches/{match['id']}/start", headers=auth).json()["status"] == "IN_PROGRESS"
    bad = client.post(f"/matches/{match['id']}/complete", json={"home_score": -1, "away_score": 0}, headers=auth)
    assert bad.status_code == 400
    assert bad.json()["kind"] == "InvalidScore"

    done = client.post(f"/matches/{match['id']}/complete", json={"home_score": 3, "away_score": 1}, headers=auth)
    assert done.json()["status"] == "FINISHED"

    back = client.patch(f"/matches/{match['id']}", json={"status": "IN_PROGRESS"}, headers=auth)
    assert back.status_code == 409
    assert back.json()["kind"] == "InvalidTransition"

    table = client.get("/standings").json()["standings"]
    assert [row["team_id"] for row in table] == [a["id"], b["id"]]
    assert table[0]["points"] == 3
    assert client.get(f"/standings/team/{b['id']}/position").json()["position"] == 2
    assert client.get("/standings/statistics").json()["total_goals"] == 4


def test_start_too_early_is_not_ready(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    match = _match(client, auth, a, b, kickoff="2099-01-01T12:00:00").json()
    resp = client.post(f"/matches/{match['id']}/start", headers=auth)
    assert resp.status_code == 409
    assert resp.json()["kind"] == "NotReady"


def test_conflict_status_and_self_play(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    c = _team(client, auth, "C")
    assert _match(client, auth, a, b).status_code == 201
    clash = _match(client, auth, c, b, kickoff="2030-05-04T16:00:00")
    assert clash.status_code == 409
    assert clash.json()["kind"] == "Conflict"
    assert _match(client, auth, c, b, kickoff="2030-05-04T18:00:00").status_code == 201
    assert _match(client, auth, a, a, kickoff="2030-06-01T12:00:00").status_code == 400


def test_partial_round_reports_created_ids(client, auth):
    teams = [_team(client, auth, n) for n in ("A", "B", "C", "D")]
    # D already plays when the second pair would kick off
    _match(client, auth, teams[3], _team(client, auth, "E"), kickoff="2030-08-10T15:30:00")
    resp = client.post(
        "/schedule/round",
        json={"team_ids": [t["id"] for t in teams], "round_start": "2030-08-10T12:00:00"},
        headers=auth,
    )
    assert resp.status_code == 409
    body = resp.json()
    assert body["kind"] == "Conflict"
    assert len(body["created_match_ids"]) == 1
    assert body["pair_count"] == 2


def test_odd_round_rejected(client, auth):
    teams = [_team(client, auth, n) for n in ("A", "B", "C")]
    resp = client.post(
        "/schedule/round",
        json={"team_ids": [t["id"] for t in teams], "round_start": "2030-08-10T12:00:00"},
        headers=auth,
    )
    assert resp.status_code == 400
    assert "created_match_ids" not in resp.json()


def test_manual_standing_edit(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    standing_b = client.get(f"/standings/team/{b['id']}").json()
    resp = client.patch(f"/standings/{standing_b['id']}", json={"points": 4, "goals_for": 2}, headers=auth)
    assert resp.json()["position"] == 1
    assert resp.json()["goal_difference"] == 2
    assert client.get(f"/teams/{b['id']}").json()["points"] == 4
    assert client.get(f"/standings/team/{a['id']}/position").json()["position"] == 2


def test_delete_in_progress_match_conflict(client, auth):
    a = _team(client, auth, "A")
    b = _team(client, auth, "B")
    match = _match(client, auth, a, b, kickoff="2000-01-01T12:00:00").json()
    client.post(f"/matches/{match['id']}/start", headers=auth)
    assert client.delete(f"/matches/{match['id']}", headers=auth).status_code == 409
    client.post(f"/matches/{match['id']}/cancel", headers=auth)
    assert client.delete(f"/matches/{match['id']}", headers=auth).status_code == 200
