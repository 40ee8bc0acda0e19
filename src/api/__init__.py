"""HTTP API for the medication reminder engine."""

from src.api.app import app

__all__ = ["app"]
