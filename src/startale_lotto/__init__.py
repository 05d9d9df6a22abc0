"""Startale Lotto client: spin, ticket and claim lifecycle engine."""

__version__ = "1.0.0"
