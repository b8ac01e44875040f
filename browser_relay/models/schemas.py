"""HTTP response models for the relay's REST surface."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    """Response model for GET /health."""

    service: str
    version: str
    status: str
    uptime_seconds: float
    connected_sessions: int
    pending_commands: int


class CircuitBreakerStatus(BaseModel):
    """One entry of GET /circuit-breakers."""

    signature: str
    command: str
    state: str
    failure_count: int
    last_failure_time: float
    total_calls: int
    total_failures: int
    total_rejections: int
    total_successes: int


class CircuitResetResponse(BaseModel):
    reset: int
