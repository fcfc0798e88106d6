"""Action queue."""
