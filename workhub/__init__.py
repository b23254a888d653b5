"""Workhub: worker coordination and job dispatch."""

__version__ = "0.1.0"
