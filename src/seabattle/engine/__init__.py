"""Board, fleet, opponent and session logic."""
