"""Health check models for the gateway API."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HealthResponse(BaseModel):
    """Health check response model.

    Attributes:
        status: Overall process status
        timestamp: Current timestamp
        uptime_seconds: Seconds since the application started
        version: Application version
        environment: Deployment environment name
    """
    status: Literal["healthy"] = "healthy"
    timestamp: datetime = Field(default_factory=_utcnow, description="Current UTC timestamp")
    uptime_seconds: float = Field(..., description="Seconds since startup")
    version: str
    environment: str


class ReadinessCheck(BaseModel):
    """Result of one readiness check."""
    name: str
    status: Literal["ok", "fail"]
    message: str


class ReadinessResponse(BaseModel):
    """Readiness response model; returned with 503 when any check fails."""
    status: Literal["ready", "not_ready"]
    timestamp: datetime = Field(default_factory=_utcnow)
    checks: List[ReadinessCheck]


class LivenessResponse(BaseModel):
    """Liveness response model with in-process statistics."""
    status: Literal["alive"] = "alive"
    timestamp: datetime = Field(default_factory=_utcnow)
    cache: Dict[str, Any] = Field(default_factory=dict, description="TTL cache counters")
    circuit_breakers: List[Dict[str, Any]] = Field(default_factory=list, description="Upstream breaker state")
