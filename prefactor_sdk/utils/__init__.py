"""Identifiers, logging and serialization helpers."""
