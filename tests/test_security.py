import json
import time

import pytest

from shared.models import SecurityEventType, Severity
from shared.security import CsrfProtector, SecurityMonitor, is_trusted_network


@pytest.fixture
def monitor(db, tmp_path):
    return SecurityMonitor(db, log_dir=str(tmp_path / "logs"))


def test_log_event_writes_row_and_file(monitor, tmp_path):
    event = monitor.log_event(
        SecurityEventType.AUTH_FAILURE, {"endpoint": "/api/collection"}, severity=Severity.LOW,
        ip="10.0.0.2", user_agent="pytest",
    )
    stored = monitor.recent_events()
    assert [e.id for e in stored] == [event.id]
    assert stored[0].metadata == {"endpoint": "/api/collection"}

    log_files = list((tmp_path / "logs").glob("security-*.log"))
    assert len(log_files) == 1
    line = json.loads(log_files[0].read_text().splitlines()[0])
    assert line["type"] == "auth_failure"
    assert line["severity"] == "low"


def test_user_id_taken_from_metadata(monitor):
    event = monitor.log_event("user_created", {"userId": "u-1"}, severity="low")
    assert event.user_id == "u-1"


def test_repeated_csrf_failures_flag_suspicious_activity(monitor):
    for _ in range(4):
        monitor.log_event(SecurityEventType.CSRF_VALIDATION_FAILURE, {"endpoint": "/x"}, ip="6.6.6.6")
    assert monitor.recent_events(types=["suspicious_activity"]) == []

    monitor.log_event(SecurityEventType.CSRF_VALIDATION_FAILURE, {"endpoint": "/x"}, ip="6.6.6.6")
    flagged = monitor.recent_events(types=["suspicious_activity"])
    assert len(flagged) == 1
    assert flagged[0].severity == "high"
    assert flagged[0].metadata["reason"] == "multiple_csrf_failures"
    assert flagged[0].metadata["failureCount"] == 5


def test_csrf_failures_counted_per_ip(monitor):
    for i in range(6):
        monitor.log_event(SecurityEventType.CSRF_VALIDATION_FAILURE, {}, ip=f"7.7.7.{i}")
    assert monitor.recent_events(types=["suspicious_activity"]) == []


def test_min_severity_filter(monitor):
    monitor.log_event("csp_violation", {}, severity="low")
    monitor.log_event("permission_violation", {}, severity="medium")
    monitor.log_event("suspicious_activity", {}, severity="critical")
    types = {e.type for e in monitor.recent_events(min_severity="medium")}
    assert types == {"permission_violation", "suspicious_activity"}
    assert len(monitor.recent_events(min_severity=Severity.CRITICAL)) == 1


def test_reset_removes_rows_and_files(monitor, tmp_path):
    monitor.log_event("auth_failure", {}, severity="low")
    result = monitor.reset()
    assert result == {"events_deleted": 1, "files_deleted": 1}
    assert monitor.recent_events() == []
    assert not list((tmp_path / "logs").glob("*.log"))


def test_monitor_without_log_dir(db):
    monitor = SecurityMonitor(db)
    monitor.log_event("auth_failure", {}, severity="low")
    assert monitor.reset() == {"events_deleted": 1, "files_deleted": 0}


def test_severity_ordering():
    assert Severity.HIGH >= Severity.MEDIUM
    assert Severity.LOW < Severity.CRITICAL
    assert not Severity.LOW >= Severity.MEDIUM


@pytest.mark.parametrize("addr,trusted", [
    ("127.0.0.1", True), ("192.168.1.20", True), ("10.1.2.3", True),
    ("100.101.102.103", True), ("8.8.8.8", False), (None, False), ("not-an-ip", False),
])
def test_trusted_network(addr, trusted):
    assert is_trusted_network(addr) is trusted


# --- CSRF tokens ---

def test_token_round_trip():
    csrf = CsrfProtector()
    secret, token = csrf.generate()
    assert csrf.verify(secret, token)
    assert not csrf.verify("other-secret", token)
    assert not csrf.verify(secret, token.replace("-", ""))


def test_tokens_are_salted():
    csrf = CsrfProtector()
    secret, _ = csrf.generate()
    assert csrf.create_token(secret) != csrf.create_token(secret)


def test_validate_reasons():
    csrf = CsrfProtector(max_age=60)
    secret, token = csrf.generate()
    cookie = csrf.cookie_value(secret)

    assert csrf.validate(cookie, token) == (True, None)
    assert csrf.validate(None, token) == (False, "missing_cookie")
    assert csrf.validate(cookie, None) == (False, "missing_token")
    assert csrf.validate(cookie, csrf.create_token("wrong")) == (False, "invalid_token")

    stale = csrf.cookie_value(secret, created_at=int((time.time() - 120) * 1000))
    assert csrf.validate(stale, token) == (False, "expired_secret")


def test_bare_secret_cookie_is_accepted():
    csrf = CsrfProtector()
    secret, token = csrf.generate()
    assert csrf.validate(secret, token) == (True, None)
