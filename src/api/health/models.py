"""Pydantic models for health check endpoints."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str = Field(..., description="Service health status")
    version: str = Field(..., description="Application version")
    can_schedule_exact: bool = Field(..., description="Whether exact timers are permitted")
    scheduled_reminders: int = Field(..., description="Number of registered reminder times")
