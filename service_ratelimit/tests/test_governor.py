"""
Unit tests for RateLimitGovernor.
"""

import threading
import pytest
from unittest.mock import MagicMock

from service_ratelimit.app.ratelimit import (
    AdmissionAction,
    RateLimitGovernor,
    RateLimitStatus,
    Thresholds,
)
from shared.config import BaseConfig
from shared.errors import ConfigurationError
from shared.test_helpers import ManualClock, create_rate_limit_headers

NOW = 1_700_000_000


class TestRateLimitGovernor:
    """Test cases for RateLimitGovernor."""

    @pytest.fixture
    def clock(self):
        return ManualClock(start=NOW)

    @pytest.fixture
    def governor(self, clock):
        """Create RateLimitGovernor with default thresholds (100/10)."""
        return RateLimitGovernor(clock=clock)

    def update(self, governor, resource="core", **fields):
        fields.setdefault("reset", NOW + 3600)
        return governor.update_rate_limit(resource, create_rate_limit_headers(**fields))

    def test_update_parses_headers(self, governor):
        """Test every quota header lands in the snapshot."""
        snapshot = self.update(governor, limit=5000, remaining=4990, used=10, reset=NOW + 120)

        assert snapshot.resource == "core"
        assert snapshot.limit == 5000
        assert snapshot.remaining == 4990
        assert snapshot.used == 10
        assert snapshot.reset_at.timestamp() == NOW + 120
        assert governor.get_rate_limit("core") == snapshot

    def test_update_defaults_missing_headers(self, governor):
        """Test absent headers default to limit 5000 and zero elsewhere."""
        snapshot = governor.update_rate_limit("core", {})

        assert snapshot.limit == 5000
        assert snapshot.remaining == 0
        assert snapshot.used == 0
        assert snapshot.reset_at.timestamp() == 0

    def test_update_unparsable_headers(self, governor):
        """Test non-numeric values degrade to defaults instead of raising."""
        snapshot = governor.update_rate_limit("core", {
            "x-ratelimit-limit": "lots",
            "x-ratelimit-remaining": "",
            "x-ratelimit-reset": "soon",
            "x-ratelimit-used": "n/a",
        })

        assert snapshot.limit == 5000
        assert snapshot.remaining == 0
        assert snapshot.used == 0
        assert snapshot.reset_at.timestamp() == 0

    def test_update_keeps_leading_integer(self, governor):
        """Test decimal or suffixed values keep their integer prefix."""
        snapshot = governor.update_rate_limit("core", {
            "x-ratelimit-limit": "5000",
            "x-ratelimit-remaining": "4999.0",
            "x-ratelimit-used": " 1.5",
            "x-ratelimit-reset": f"{NOW + 60}abc",
        })

        assert snapshot.remaining == 4999
        assert snapshot.used == 1
        assert snapshot.reset_at.timestamp() == NOW + 60
        assert governor.resource_status("core").status == RateLimitStatus.HEALTHY

    def test_update_out_of_range_reset(self, governor):
        """Test an absurd reset timestamp degrades to the epoch."""
        snapshot = self.update(governor, remaining=10, reset=10 ** 20)

        assert snapshot.reset_at.timestamp() == 0

    def test_update_case_insensitive_headers(self, governor):
        """Test header names are matched regardless of case."""
        snapshot = governor.update_rate_limit("core", {
            "X-RateLimit-Limit": "60",
            "X-RateLimit-Remaining": "59",
            "X-RateLimit-Used": "1",
            "X-RateLimit-Reset": str(NOW + 60),
        })

        assert (snapshot.limit, snapshot.remaining, snapshot.used) == (60, 59, 1)

    def test_update_overwrites_whole_snapshot(self, governor):
        """Test a later update replaces every field, not just those present."""
        self.update(governor, limit=5000, remaining=4000, used=1000)
        snapshot = governor.update_rate_limit("core", {"x-ratelimit-remaining": "7"})

        assert snapshot.remaining == 7
        assert snapshot.used == 0
        assert snapshot.limit == 5000

    def test_resources_are_independent(self, governor):
        """Test resources never share state."""
        self.update(governor, "core", remaining=0)
        self.update(governor, "search", remaining=25, limit=30)

        assert governor.is_rate_limited("core") is True
        assert governor.is_rate_limited("search") is False
        assert set(governor.all_rate_limits()) == {"core", "search"}

    def test_all_rate_limits_is_a_copy(self, governor):
        """Test callers cannot mutate the store through the copy."""
        self.update(governor, remaining=10)
        governor.all_rate_limits().clear()

        assert governor.get_rate_limit("core") is not None

    def test_rate_limited(self, governor):
        """Test exhausted resource is reported as rate limited."""
        self.update(governor, limit=5000, remaining=0, used=5000, reset=NOW + 600)

        assert governor.is_rate_limited("core") is True
        assert governor.resource_status("core").status == RateLimitStatus.RATE_LIMITED

    def test_negative_remaining_is_exhausted(self, governor):
        """Test negative remaining counts as exhausted."""
        self.update(governor, remaining=-3)

        assert governor.is_rate_limited("core") is True

    def test_unknown_resource_defaults(self, governor):
        """Test unknown resources are optimistic everywhere."""
        assert governor.is_rate_limited("core") is False
        assert governor.should_wait("core") is False
        assert governor.time_until_reset("core") == 0
        assert governor.wait_time("core") == 0
        assert governor.percentage_used("core") == 0
        assert governor.is_near_limit("core") is False
        assert governor.is_critical("core") is False
        assert governor.optimal_batch_size("core", 50) == 50

    @pytest.mark.parametrize("remaining, expected", [
        (0, RateLimitStatus.RATE_LIMITED),
        (1, RateLimitStatus.CRITICAL),
        (5, RateLimitStatus.CRITICAL),
        (10, RateLimitStatus.CRITICAL),
        (11, RateLimitStatus.WARNING),
        (50, RateLimitStatus.WARNING),
        (100, RateLimitStatus.WARNING),
        (101, RateLimitStatus.HEALTHY),
        (500, RateLimitStatus.HEALTHY),
    ])
    def test_resource_status_classification(self, governor, remaining, expected):
        """Test exhausted > critical > warning > healthy ordering."""
        self.update(governor, remaining=remaining)

        status = governor.resource_status("core")

        assert status.status == expected
        assert status.remaining == remaining

    def test_resource_status_messages(self, governor):
        """Test status messages mention the remaining calls."""
        self.update(governor, "a", remaining=5)
        self.update(governor, "b", remaining=50)
        self.update(governor, "c", remaining=500)
        self.update(governor, "d", remaining=0)

        assert governor.resource_status("a").message == "Critical: Only 5 requests remaining"
        assert governor.resource_status("b").message == "Warning: 50 requests remaining"
        assert governor.resource_status("c").message == "500 requests remaining"
        assert governor.resource_status("d").message == "Rate limit exceeded"

    def test_resource_status_unknown(self, governor):
        """Test unknown resource reports healthy with no data."""
        status = governor.resource_status("graphql")

        assert status.status == RateLimitStatus.HEALTHY
        assert status.message == "No rate limit data available"
        assert status.remaining is None
        assert status.reset_time == "Unknown"

    def test_time_until_reset(self, governor, clock):
        """Test countdown tracks the clock and floors at zero."""
        self.update(governor, remaining=100, reset=NOW + 90)

        assert governor.time_until_reset("core") == 90
        clock.advance(60)
        assert governor.time_until_reset("core") == 30
        clock.advance(60)
        assert governor.time_until_reset("core") == 0

    def test_wait_time_only_when_exhausted(self, governor):
        """Test wait time is zero while calls remain."""
        self.update(governor, "core", remaining=3, reset=NOW + 90)
        self.update(governor, "search", remaining=0, reset=NOW + 45)

        assert governor.wait_time("core") == 0
        assert governor.wait_time("search") == 45

    def test_should_wait(self, governor):
        """Test should_wait compares remaining with the requested minimum."""
        self.update(governor, remaining=5)

        assert governor.should_wait("core") is False
        assert governor.should_wait("core", minimum_remaining=5) is False
        assert governor.should_wait("core", minimum_remaining=6) is True

    def test_percentage_used(self, governor):
        """Test used over limit as a percentage."""
        self.update(governor, limit=5000, used=1250, remaining=3750)

        assert governor.percentage_used("core") == 25.0

    def test_percentage_used_zero_limit(self, governor):
        """Test a zero limit does not divide by zero."""
        self.update(governor, limit=0, used=10, remaining=0)

        assert governor.percentage_used("core") == 0

    def test_near_limit_and_critical(self, governor):
        """Test threshold checks including an explicit threshold."""
        self.update(governor, remaining=50)

        assert governor.is_near_limit("core") is True
        assert governor.is_near_limit("core", threshold=20) is False
        assert governor.is_near_limit("core", threshold=0) is False
        assert governor.is_critical("core") is False

        self.update(governor, remaining=10)
        assert governor.is_critical("core") is True

    @pytest.mark.parametrize("remaining, max_batch, expected", [
        (30, 100, 20),
        (500, 100, 100),
        (10, 100, 0),
        (5, 100, 0),
        (0, 100, 0),
        (60, 25, 25),
    ])
    def test_optimal_batch_size(self, governor, remaining, max_batch, expected):
        """Test batches keep the critical reserve free."""
        self.update(governor, remaining=remaining)

        assert governor.optimal_batch_size("core", max_batch) == expected

    @pytest.mark.parametrize("seconds, expected", [
        (1, "1 minute"),
        (60, "1 minute"),
        (61, "2 minutes"),
        (59 * 60, "59 minutes"),
        (60 * 60, "1 hour"),
        (61 * 60, "1 hour 1 minute"),
        (125 * 60, "2 hours 5 minutes"),
    ])
    def test_reset_time_description(self, governor, seconds, expected):
        """Test wait durations render in minutes or hours and minutes."""
        self.update(governor, remaining=0, reset=NOW + seconds)

        assert governor.reset_time_description("core") == expected
        assert governor.resource_status("core").reset_time == expected

    def test_reset_time_description_not_limited(self, governor):
        """Test resources with calls left report no active limit."""
        self.update(governor, remaining=5, reset=NOW + 600)

        assert governor.reset_time_description("core") == "Rate limit not active"
        assert governor.resource_status("core").reset_time == "Rate limit not active"

    def test_clear_expired(self, governor, clock):
        """Test only snapshots whose reset passed are removed."""
        self.update(governor, "core", remaining=0, reset=NOW + 60)
        self.update(governor, "search", remaining=10, reset=NOW + 600)

        assert governor.clear_expired() == 0

        clock.advance(61)
        assert governor.clear_expired() == 1
        assert governor.get_rate_limit("core") is None
        assert governor.is_rate_limited("core") is False
        assert governor.get_rate_limit("search") is not None

    def test_clear_expired_keeps_exact_reset(self, governor, clock):
        """Test a snapshot resetting exactly now is kept."""
        self.update(governor, remaining=0, reset=NOW + 60)
        clock.advance(60)

        assert governor.clear_expired() == 0

    def test_global_status(self, governor):
        """Test counts match the per-resource classification."""
        self.update(governor, "core", remaining=0)
        self.update(governor, "search", remaining=5)
        self.update(governor, "graphql", remaining=50)
        self.update(governor, "repos", remaining=500)
        self.update(governor, "orgs", remaining=4000)

        status = governor.global_status()

        assert status.total_resources == 5
        assert status.rate_limited_count == 1
        assert status.critical_count == 1
        assert status.warning_count == 1
        assert status.healthy_count == 2

        classified = [governor.resource_status(r).status for r in governor.all_rate_limits()]
        assert classified.count(RateLimitStatus.HEALTHY) == status.healthy_count

    def test_global_status_empty(self, governor):
        """Test an empty store reports zero everywhere."""
        status = governor.global_status()

        assert status.total_resources == 0
        assert status.healthy_count == 0

    def test_rate_limit_details(self, governor):
        """Test details carry a rounded percentage."""
        self.update(governor, limit=3, used=2, remaining=1)

        details = governor.rate_limit_details()

        assert len(details) == 1
        assert details[0].resource == "core"
        assert details[0].percentage_used == 67

    def test_admission_unknown_resource(self, governor):
        """Test unknown resources are admitted in full."""
        decision = governor.admission("core", batch_size=50)

        assert decision.action == AdmissionAction.PROCEED
        assert decision.batch_size == 50

    def test_admission_proceed(self, governor):
        """Test batches that fit above the reserve proceed."""
        self.update(governor, remaining=500)

        decision = governor.admission("core", batch_size=100)

        assert decision.action == AdmissionAction.PROCEED
        assert decision.batch_size == 100
        assert decision.status == RateLimitStatus.HEALTHY

    def test_admission_shrink(self, governor):
        """Test batches larger than the headroom shrink."""
        self.update(governor, remaining=30)

        decision = governor.admission("core", batch_size=100)

        assert decision.action == AdmissionAction.SHRINK
        assert decision.batch_size == 20
        assert decision.status == RateLimitStatus.WARNING

    def test_admission_wait(self, governor):
        """Test exhausted resources advise waiting until reset."""
        self.update(governor, remaining=0, reset=NOW + 120)

        decision = governor.admission("core", batch_size=10)

        assert decision.action == AdmissionAction.WAIT
        assert decision.batch_size == 0
        assert decision.wait_seconds == 120
        assert decision.status == RateLimitStatus.RATE_LIMITED

    def test_admission_reserve_only(self, governor):
        """Test single calls may draw on the reserve while batches shrink to one."""
        self.update(governor, remaining=5)

        single = governor.admission("core")
        batch = governor.admission("core", batch_size=10)

        assert single.action == AdmissionAction.PROCEED
        assert single.batch_size == 1
        assert batch.action == AdmissionAction.SHRINK
        assert batch.batch_size == 1

    def test_admission_rejects_empty_batch(self, governor):
        """Test batch size must be positive."""
        with pytest.raises(ValueError):
            governor.admission("core", batch_size=0)

    def test_custom_thresholds(self, clock):
        """Test thresholds drive classification and batch sizing."""
        governor = RateLimitGovernor(Thresholds(warning=500, critical=100), clock=clock)
        governor.update_rate_limit("core", create_rate_limit_headers(remaining=300))

        assert governor.resource_status("core").status == RateLimitStatus.WARNING
        assert governor.optimal_batch_size("core", 1000) == 200

    def test_from_config(self, clock):
        """Test thresholds come from configuration."""
        config = BaseConfig(rate_limit_warning_threshold=40, rate_limit_critical_threshold=4)

        governor = RateLimitGovernor.from_config(config, clock=clock)

        assert governor.warning_threshold == 40
        assert governor.critical_threshold == 4

    def test_invalid_thresholds(self):
        """Test inconsistent thresholds are a configuration error."""
        with pytest.raises(ConfigurationError):
            Thresholds(warning=10, critical=100)
        with pytest.raises(ConfigurationError):
            Thresholds(warning=-1, critical=-5)

    def test_logs_error_when_exhausted(self, governor):
        """Test exhausted updates log at error level."""
        governor.logger = MagicMock()

        self.update(governor, remaining=0)

        governor.logger.error.assert_called_once()
        assert governor.logger.error.call_args.kwargs["resource"] == "core"

    def test_logs_warning_when_low(self, governor):
        """Test critical and warning updates log at warning level."""
        governor.logger = MagicMock()

        self.update(governor, remaining=5)
        self.update(governor, remaining=50)

        assert governor.logger.warning.call_count == 2
        messages = [call.args[0] for call in governor.logger.warning.call_args_list]
        assert messages == ["GitHub API rate limit critical", "GitHub API rate limit warning"]

    def test_logs_debug_when_healthy(self, governor):
        """Test healthy updates log at debug level only."""
        governor.logger = MagicMock()

        self.update(governor, remaining=4000)

        governor.logger.debug.assert_called_once()
        governor.logger.warning.assert_not_called()
        governor.logger.error.assert_not_called()

    def test_concurrent_updates_stay_coherent(self, governor):
        """Test readers never observe a half-applied snapshot."""
        limit = 5000
        errors = []
        stop = threading.Event()

        def writer(offset):
            for used in range(offset, limit, 7):
                self.update(governor, limit=limit, used=used, remaining=limit - used)

        def reader():
            while not stop.is_set():
                snapshot = governor.get_rate_limit("core")
                if snapshot is not None and snapshot.used + snapshot.remaining != limit:
                    errors.append(snapshot)

        readers = [threading.Thread(target=reader) for _ in range(2)]
        writers = [threading.Thread(target=writer, args=(i,)) for i in range(4)]
        for thread in readers + writers:
            thread.start()
        for thread in writers:
            thread.join()
        stop.set()
        for thread in readers:
            thread.join()

        assert errors == []
        snapshot = governor.get_rate_limit("core")
        assert snapshot.used + snapshot.remaining == limit
