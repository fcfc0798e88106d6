"""Configuration, runtime construction and lifecycle."""
