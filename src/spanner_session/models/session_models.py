"""
Session handle model.
A multiplexed session is an immutable, time-stamped identity on the remote service.
"""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SessionHandle(BaseModel):
    """Authorized execution context on the remote service.

    Owned by the session cache. Callers receive a reference for the duration
    of one operation and must not keep it past the refresh threshold.
    """

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, description="Fully-qualified session resource name")
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    multiplexed: bool = Field(default=True, description="Usable by many concurrent transactions")

    @field_validator("created_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC so age math never mixes kinds."""
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    def age_seconds(self, now: datetime | None = None) -> float:
        """Seconds elapsed since the session was created."""
        now = now or datetime.now(UTC)
        return (now - self.created_at).total_seconds()

    def created_since(self, seconds: float, now: datetime | None = None) -> bool:
        """Whether the session is at least ``seconds`` old."""
        return self.age_seconds(now) >= seconds
