"""
Per-resource GitHub rate limit governor.

Turns the ``x-ratelimit-*`` headers of each response into a stored snapshot
per quota bucket ("core", "search", "graphql", ...) and derives advisory
signals from it: whether to wait and for how long, how large the next batch
may be, and a health classification. Nothing here sleeps or raises because a
resource is exhausted; callers decide what to do with the advice.

Resources with no snapshot yet are treated as healthy until the first
response for that bucket populates them.
"""

import math
import re
import threading
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from shared.clock import Clock, system_clock, to_datetime
from shared.config import BaseConfig
from shared.logging import get_logger
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

HEADER_LIMIT = "x-ratelimit-limit"
HEADER_REMAINING = "x-ratelimit-remaining"
HEADER_RESET = "x-ratelimit-reset"
HEADER_USED = "x-ratelimit-used"

DEFAULT_LIMIT = 5000
DEFAULT_MAX_BATCH_SIZE = 100
NOT_LIMITED = "Rate limit not active"

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class RateLimitGovernor:
    """Tracks the latest quota snapshot per resource and gives admission advice."""

    def __init__(self, thresholds: Optional[Thresholds] = None, clock: Clock = system_clock):
        self.thresholds = thresholds or Thresholds()
        self.logger = get_logger("ratelimit.governor")
        self._clock = clock
        self._rate_limits: Dict[str, RateLimitSnapshot] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_config(cls, config: BaseConfig, clock: Clock = system_clock) -> "RateLimitGovernor":
        """Create a governor using the configured thresholds."""
        thresholds = Thresholds(
            warning=config.rate_limit_warning_threshold,
            critical=config.rate_limit_critical_threshold,
        )
        return cls(thresholds, clock=clock)

    @property
    def warning_threshold(self) -> int:
        return self.thresholds.warning

    @property
    def critical_threshold(self) -> int:
        return self.thresholds.critical

    def update_rate_limit(self, resource: str, headers: Mapping[str, Any]) -> RateLimitSnapshot:
        """Replace the snapshot for ``resource`` with values parsed from ``headers``.

        Missing or non-numeric values fall back to a limit of 5000 and zero for
        everything else; they are never reported as errors.
        """
        values = {str(key).lower(): value for key, value in headers.items()}

        limit = _parse_header_int(values.get(HEADER_LIMIT))
        remaining = _parse_header_int(values.get(HEADER_REMAINING))
        reset = _parse_header_int(values.get(HEADER_RESET))
        used = _parse_header_int(values.get(HEADER_USED))

        snapshot = RateLimitSnapshot(
            resource=resource,
            limit=DEFAULT_LIMIT if limit is None else limit,
            remaining=0 if remaining is None else remaining,
            used=0 if used is None else used,
            reset_at=_reset_datetime(reset),
        )

        with self._lock:
            self._rate_limits[resource] = snapshot

        self._log_snapshot(snapshot)
        return snapshot

    def get_rate_limit(self, resource: str) -> Optional[RateLimitSnapshot]:
        with self._lock:
            return self._rate_limits.get(resource)

    def all_rate_limits(self) -> Dict[str, RateLimitSnapshot]:
        """Copy of every tracked snapshot keyed by resource."""
        with self._lock:
            return dict(self._rate_limits)

    def is_rate_limited(self, resource: str) -> bool:
        snapshot = self.get_rate_limit(resource)
        return snapshot is not None and snapshot.exhausted

    def time_until_reset(self, resource: str) -> float:
        """Seconds until the quota for ``resource`` resets, 0 if unknown or past."""
        return self._time_until_reset(self.get_rate_limit(resource))

    def should_wait(self, resource: str, minimum_remaining: int = 1) -> bool:
        snapshot = self.get_rate_limit(resource)
        return snapshot is not None and snapshot.remaining < minimum_remaining

    def wait_time(self, resource: str) -> float:
        """Seconds to wait before calling ``resource`` again; 0 unless exhausted."""
        return self._wait_time(self.get_rate_limit(resource))

    def percentage_used(self, resource: str) -> float:
        return _percentage_used(self.get_rate_limit(resource))

    def is_near_limit(self, resource: str, threshold: Optional[int] = None) -> bool:
        snapshot = self.get_rate_limit(resource)
        if snapshot is None:
            return False
        effective = self.warning_threshold if threshold is None else threshold
        return snapshot.remaining <= effective

    def is_critical(self, resource: str) -> bool:
        return self.is_near_limit(resource, self.critical_threshold)

    def optimal_batch_size(self, resource: str, max_batch_size: int = DEFAULT_MAX_BATCH_SIZE) -> int:
        """Largest batch that leaves the critical reserve untouched.

        Returns ``max_batch_size`` unchanged for resources with no snapshot.
        """
        return self._batch_size(self.get_rate_limit(resource), max_batch_size)

    def reset_time_description(self, resource: str) -> str:
        """Human readable rendering of ``wait_time``."""
        return _describe_wait(self.wait_time(resource))

    def resource_status(self, resource: str) -> ResourceStatus:
        snapshot = self.get_rate_limit(resource)
        if snapshot is None:
            return ResourceStatus(
                resource=resource,
                status=RateLimitStatus.HEALTHY,
                message="No rate limit data available",
                remaining=None,
                reset_time="Unknown",
            )

        status = self._classify(snapshot)
        if status == RateLimitStatus.RATE_LIMITED:
            message = "Rate limit exceeded"
        elif status == RateLimitStatus.CRITICAL:
            message = f"Critical: Only {snapshot.remaining} requests remaining"
        elif status == RateLimitStatus.WARNING:
            message = f"Warning: {snapshot.remaining} requests remaining"
        else:
            message = f"{snapshot.remaining} requests remaining"

        return ResourceStatus(
            resource=resource,
            status=status,
            message=message,
            remaining=snapshot.remaining,
            reset_time=_describe_wait(self._wait_time(snapshot)),
        )

    def admission(self, resource: str, batch_size: int = 1) -> AdmissionDecision:
        """Advise whether a batch of ``batch_size`` calls may go out now.

        WAIT when the resource is exhausted, PROCEED when the batch fits above
        the critical reserve, SHRINK to what fits otherwise. Once only the
        reserve is left, single calls may still proceed and batches shrink
        to one call.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        snapshot = self.get_rate_limit(resource)
        if snapshot is None:
            return AdmissionDecision(
                resource=resource,
                action=AdmissionAction.PROCEED,
                batch_size=batch_size,
                status=RateLimitStatus.HEALTHY,
            )

        status = self._classify(snapshot)
        if snapshot.exhausted:
            return AdmissionDecision(
                resource=resource,
                action=AdmissionAction.WAIT,
                batch_size=0,
                wait_seconds=self._wait_time(snapshot),
                status=status,
            )

        allowed = self._batch_size(snapshot, batch_size)
        if allowed >= batch_size:
            action, size = AdmissionAction.PROCEED, batch_size
        elif allowed > 0:
            action, size = AdmissionAction.SHRINK, allowed
        elif batch_size == 1:
            action, size = AdmissionAction.PROCEED, 1
        else:
            action, size = AdmissionAction.SHRINK, 1

        return AdmissionDecision(resource=resource, action=action, batch_size=size, status=status)

    def clear_expired(self) -> int:
        """Drop snapshots whose reset time has passed; returns how many were dropped."""
        now = self._clock()
        with self._lock:
            expired = [
                resource for resource, snapshot in self._rate_limits.items()
                if snapshot.reset_at.timestamp() < now
            ]
            for resource in expired:
                del self._rate_limits[resource]

        for resource in expired:
            self.logger.debug("Cleared expired rate limit data", resource=resource)

        return len(expired)

    def global_status(self) -> GlobalStatus:
        counts = {status: 0 for status in RateLimitStatus}
        snapshots = self.all_rate_limits()
        for snapshot in snapshots.values():
            counts[self._classify(snapshot)] += 1

        return GlobalStatus(
            total_resources=len(snapshots),
            healthy_count=counts[RateLimitStatus.HEALTHY],
            warning_count=counts[RateLimitStatus.WARNING],
            critical_count=counts[RateLimitStatus.CRITICAL],
            rate_limited_count=counts[RateLimitStatus.RATE_LIMITED],
        )

    def rate_limit_details(self) -> List[RateLimitDetail]:
        return [
            RateLimitDetail(
                resource=snapshot.resource,
                limit=snapshot.limit,
                remaining=snapshot.remaining,
                used=snapshot.used,
                reset_at=snapshot.reset_at,
                percentage_used=round(_percentage_used(snapshot)),
            )
            for snapshot in self.all_rate_limits().values()
        ]

    def _classify(self, snapshot: RateLimitSnapshot) -> RateLimitStatus:
        if snapshot.exhausted:
            return RateLimitStatus.RATE_LIMITED
        if snapshot.remaining <= self.critical_threshold:
            return RateLimitStatus.CRITICAL
        if snapshot.remaining <= self.warning_threshold:
            return RateLimitStatus.WARNING
        return RateLimitStatus.HEALTHY

    def _time_until_reset(self, snapshot: Optional[RateLimitSnapshot]) -> float:
        if snapshot is None:
            return 0.0
        return max(0.0, snapshot.reset_at.timestamp() - self._clock())

    def _wait_time(self, snapshot: Optional[RateLimitSnapshot]) -> float:
        if snapshot is None or not snapshot.exhausted:
            return 0.0
        return self._time_until_reset(snapshot)

    def _batch_size(self, snapshot: Optional[RateLimitSnapshot], max_batch_size: int) -> int:
        if snapshot is None:
            return max_batch_size
        # Keep the critical reserve for unrelated calls on the same resource
        available = max(0, snapshot.remaining - self.critical_threshold)
        return min(max_batch_size, available)

    def _log_snapshot(self, snapshot: RateLimitSnapshot):
        percentage_used = _percentage_used(snapshot)
        reset = snapshot.reset_at.isoformat()

        if snapshot.exhausted:
            self.logger.error(
                "GitHub API rate limit exceeded",
                resource=snapshot.resource,
                limit=snapshot.limit,
                remaining=snapshot.remaining,
                reset=reset,
                percentage_used=percentage_used
            )
        elif snapshot.remaining <= self.critical_threshold:
            self.logger.warning(
                "GitHub API rate limit critical",
                resource=snapshot.resource,
                remaining=snapshot.remaining,
                reset=reset,
                percentage_used=percentage_used
            )
        elif snapshot.remaining <= self.warning_threshold:
            self.logger.warning(
                "GitHub API rate limit warning",
                resource=snapshot.resource,
                remaining=snapshot.remaining,
                reset=reset,
                percentage_used=percentage_used
            )
        else:
            self.logger.debug(
                "GitHub API rate limit updated",
                resource=snapshot.resource,
                remaining=snapshot.remaining,
                percentage_used=percentage_used
            )


def _parse_header_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    # Leading integer wins, so "4999.0" reads as 4999
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else None


def _percentage_used(snapshot: Optional[RateLimitSnapshot]) -> float:
    if snapshot is None or snapshot.limit == 0:
        return 0.0
    return snapshot.used / snapshot.limit * 100


def _describe_wait(seconds: float) -> str:
    if seconds <= 0:
        return NOT_LIMITED

    minutes = math.ceil(seconds / 60)
    if minutes < 60:
        return f"{minutes} minute{'' if minutes == 1 else 's'}"

    hours, minutes = divmod(minutes, 60)
    text = f"{hours} hour{'' if hours == 1 else 's'}"
    if minutes:
        text += f" {minutes} minute{'' if minutes == 1 else 's'}"
    return text


def _reset_datetime(reset: Optional[int]) -> datetime:
    if reset is None:
        return to_datetime(0)
    try:
        return to_datetime(reset)
    except (OverflowError, OSError, ValueError):
        return to_datetime(0)
