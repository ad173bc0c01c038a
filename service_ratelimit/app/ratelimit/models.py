"""
Rate limit data models for the Governor.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from shared.errors import ConfigurationError


class RateLimitStatus(str, Enum):
    """Resource health classification, most severe last."""
    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
    RATE_LIMITED = "rate_limited"


class AdmissionAction(str, Enum):
    """Advice returned to a caller about to spend quota."""
    PROCEED = "proceed"
    WAIT = "wait"
    SHRINK = "shrink"


@dataclass(frozen=True)
class Thresholds:
    """Remaining-call boundaries between healthy, warning and critical."""
    warning: int = 100
    critical: int = 10

    def __post_init__(self):
        if self.critical < 0 or self.warning < 0:
            raise ConfigurationError(
                "Rate limit thresholds must be non-negative",
                details={"warning": self.warning, "critical": self.critical}
            )
        if self.critical > self.warning:
            raise ConfigurationError(
                "Critical threshold must not exceed warning threshold",
                details={"warning": self.warning, "critical": self.critical}
            )


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Quota state for one resource as reported by a single response."""
    resource: str
    limit: int
    remaining: int
    used: int
    reset_at: datetime

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0


class ResourceStatus(BaseModel):
    """Classified status of one resource."""
    resource: str
    status: RateLimitStatus
    message: str
    remaining: Optional[int] = None
    reset_time: str


class GlobalStatus(BaseModel):
    """Status counts across every tracked resource."""
    total_resources: int = 0
    healthy_count: int = 0
    warning_count: int = 0
    critical_count: int = 0
    rate_limited_count: int = 0


class RateLimitDetail(BaseModel):
    """Raw snapshot view with percentage used."""
    resource: str
    limit: int
    remaining: int
    used: int
    reset_at: datetime
    percentage_used: int


class AdmissionDecision(BaseModel):
    """Admission guidance for a pending call or batch."""
    resource: str
    action: AdmissionAction
    batch_size: int = Field(..., description="Calls the caller may issue now")
    wait_seconds: float = Field(0.0, description="Advisory delay before retrying")
    status: RateLimitStatus
