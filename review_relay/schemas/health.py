"""Pydantic response models for the health and info endpoints."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Response model for the /health endpoint."""

    status: str
    timestamp: str
    service: str


class InfoResponse(BaseModel):
    """Response model for the /info endpoint."""

    service: str
    version: str
    description: str
    review_engine: str
    notification_mode: str
    endpoints: list[str]
