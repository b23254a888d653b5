"""Logging, tracing and request context."""
