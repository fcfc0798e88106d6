"""Agent instance lifecycle."""
