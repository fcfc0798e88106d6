"""Tracing primitives: span types, spans, context and the tracer."""
