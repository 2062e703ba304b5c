"""League backend: teams, venues, match scheduling and the league table."""
