#!/usr/bin/env python3
"""
Season demo: Create teams -> Generate round -> Play matches -> Print table.
Run from project root: python3 scripts/season_demo.py
"""
from __future__ import annotations

import logging
import random
from datetime import timedelta
from pathlib import Path

from league_backend.models import utc_now
from league_backend.persistence import get_connection, init_db, set_db_path
from league_backend.services import (
    MatchLifecycle,
    RoundScheduler,
    StandingsLedger,
    TeamService,
    VenueService,
)

PROJECT_ROOT = Path(__file__).resolve().parent.parent
TEAM_NAMES = ["Harbour City", "Northgate Rovers", "Millbrook Town", "Eastfield Athletic"]


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    # Use data/season_demo.db for the demo (distinct from league.db)
    db_path = PROJECT_ROOT / "data" / "season_demo.db"
    if db_path.exists():
        db_path.unlink()
    set_db_path(db_path)
    init_db(db_path=db_path)

    rng = random.Random(2024)
    teams = TeamService()
    lifecycle = MatchLifecycle()
    scheduler = RoundScheduler(lifecycle)
    ledger = StandingsLedger()

    conn = get_connection()
    try:
        # 1. Teams and a venue
        created = [teams.create_team(conn, name, city="Leeds") for name in TEAM_NAMES]
        venue = VenueService().create_venue(conn, "Riverside Ground", "Leeds", 12000, surface="GRASS")
        print(f"Created {len(created)} teams and venue {venue.name}")

        # 2. One round, kicking off now so the matches can start
        ids = [t.id for t in created]
        matches = scheduler.generate_round(conn, ids, utc_now() - timedelta(hours=6), venue.id)
        print(f"Scheduled {len(matches)} matches")

        # 3. Play them
        for match in matches:
            lifecycle.start_match(conn, match.id)
            done = lifecycle.complete_match(conn, match.id, rng.randint(0, 4), rng.randint(0, 4))
            print(f"  {done.home_team_id[:8]} {done.home_score}-{done.away_score} {done.away_team_id[:8]}")

        # 4. Table
        names = {t.id: t.name for t in created}
        print("\nPos  Team                 P  W  D  L  GD  Pts")
        for s in ledger.get_standings(conn):
            print(
                f"{s.position:>3}  {names[s.team_id]:<20} {s.matches_played}  {s.wins}  {s.draws}  "
                f"{s.losses}  {s.goal_difference:>2}  {s.points:>3}"
            )
    finally:
        conn.close()


if __name__ == "__main__":
    main()
