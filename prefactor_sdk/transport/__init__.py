"""Delivery: worker and transports."""
