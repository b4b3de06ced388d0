"""
Unit tests for access-pattern anomaly detection
"""

import pytest

from medgate.audit import SecurityEventType
from medgate.errors import RapidAccessError
from medgate.security.anomaly import AnomalyDetector


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def detector(audit, clock):
    return AnomalyDetector(audit, window_seconds=60, rapid_access_threshold=10, multi_ip_threshold=3, clock=clock)


class TestRapidAccess:
    """Test the per-user request rate check"""

    def test_threshold_requests_are_allowed(self, detector):
        for _ in range(10):
            report = detector.check_suspicious("u1", "step-1", "10.0.0.1")

        assert report.request_count == 10
        assert report.warnings == []

    def test_request_over_threshold_is_rejected(self, detector, audit_sink):
        for _ in range(10):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")

        with pytest.raises(RapidAccessError) as exc_info:
            detector.check_suspicious("u1", "step-1", "10.0.0.1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "60"
        assert audit_sink.events(SecurityEventType.RAPID_ACCESS_DETECTED.value)[0].metadata["requestCount"] == 11

    def test_window_slides(self, detector, clock):
        for _ in range(10):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")

        clock.now += 61

        assert detector.check_suspicious("u1", "step-1", "10.0.0.1").request_count == 1

    def test_users_are_independent(self, detector):
        for _ in range(10):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")

        assert detector.check_suspicious("u2", "step-1", "10.0.0.1").request_count == 1

    def test_reset(self, detector):
        for _ in range(10):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")
        detector.reset("u1")

        assert detector.check_suspicious("u1", "step-1", "10.0.0.1").request_count == 1


class TestMultipleIps:
    """Test the distinct source IP check"""

    def test_many_ips_are_reported_not_rejected(self, detector, audit_sink):
        for i in range(3):
            assert detector.check_suspicious("u1", "step-1", f"10.0.0.{i}").warnings == []

        report = detector.check_suspicious("u1", "step-1", "10.0.0.9")

        assert report.distinct_ips == 4
        assert report.warnings == [SecurityEventType.MULTIPLE_IP_ADDRESSES.value]
        assert audit_sink.events(SecurityEventType.MULTIPLE_IP_ADDRESSES.value)[0].metadata["ipCount"] == 4


class TestHistoryPruning:
    """Test that idle users do not accumulate"""

    def test_idle_users_are_dropped(self, detector, clock):
        detector.check_suspicious("u1", "step-1", "10.0.0.1")
        clock.now += 30
        detector.check_suspicious("u2", "step-1", "10.0.0.1")

        clock.now += 31

        assert detector.prune() == 1
        assert "u1" not in detector._history
        assert detector.tracked_users() == 1

    def test_pruned_user_starts_fresh(self, detector, clock):
        for _ in range(10):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")
        clock.now += 61
        detector.prune()

        assert detector.check_suspicious("u1", "step-1", "10.0.0.1").request_count == 1

    def test_rejected_first_access_leaves_no_entry(self, audit, clock):
        detector = AnomalyDetector(audit, window_seconds=60, rapid_access_threshold=0, clock=clock)

        with pytest.raises(RapidAccessError):
            detector.check_suspicious("u1", "step-1", "10.0.0.1")

        assert detector.tracked_users() == 0

    def test_session_sweep_prunes_history(self, gateway):
        gateway.anomaly.check_suspicious("u1", "step-1", "10.0.0.1")
        gateway.anomaly.window_seconds = 0

        gateway.cleanup_expired_sessions()

        assert gateway.anomaly.tracked_users() == 0
