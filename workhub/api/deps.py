"""Shared FastAPI dependencies."""

from starlette.requests import HTTPConnection

from workhub.gateway.hub import Hub


def get_hub(conn: HTTPConnection) -> Hub:
    """The process-wide hub created in the app lifespan."""
    return conn.app.state.hub
