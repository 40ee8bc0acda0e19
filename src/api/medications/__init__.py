"""Medication reminder API endpoints."""

from src.api.medications.endpoints import router

__all__ = ["router"]
