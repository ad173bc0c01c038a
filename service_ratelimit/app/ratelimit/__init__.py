"""
Rate limit governance package.

Holds the per-resource quota store fed by GitHub response headers and the
advisory signals derived from it (wait times, batch sizing, health).
"""

from .governor import RateLimitGovernor
from .models import (
    AdmissionAction,
    AdmissionDecision,
    GlobalStatus,
    RateLimitDetail,
    RateLimitSnapshot,
    RateLimitStatus,
    ResourceStatus,
    Thresholds,
)
from .tracking import determine_resource, record_response, track_responses, track_responses_async

__all__ = [
    "RateLimitGovernor",
    "AdmissionAction",
    "AdmissionDecision",
    "GlobalStatus",
    "RateLimitDetail",
    "RateLimitSnapshot",
    "RateLimitStatus",
    "ResourceStatus",
    "Thresholds",
    "determine_resource",
    "record_response",
    "track_responses",
    "track_responses_async",
]
