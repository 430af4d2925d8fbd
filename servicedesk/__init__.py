"""Service desk backend: ticket lifecycle, customer tracking and coverage lookup."""
