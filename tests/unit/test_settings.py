"""Unit tests for ScopeSyncSettings."""

import pytest

from scopesync import constants
from scopesync.settings import ScopeSyncSettings


def test_settings_defaults():
    s = ScopeSyncSettings()
    assert s.request_timeout_s == constants.DEFAULT_REQUEST_TIMEOUT_S
    assert s.request_retries == 2
    assert s.failure_threshold == 3
    assert s.fault_threshold == 5
    assert s.consolidated_ttl_s == 0.5
    assert s.fast_poll_interval_s == 1.0
    assert s.slow_poll_interval_s == 10.0
    assert s.log_level == "INFO"


def test_burst_interval():
    s = ScopeSyncSettings(fast_poll_interval_s=2.0, burst_divisor=4.0)
    assert s.burst_poll_interval_s == 0.5


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("SCOPESYNC_FAST_POLL_INTERVAL_S", "2.5")
    monkeypatch.setenv("SCOPESYNC_FAILURE_THRESHOLD", "5")
    s = ScopeSyncSettings()
    assert s.fast_poll_interval_s == 2.5
    assert s.failure_threshold == 5


def test_explicit_values_override_environment(monkeypatch):
    monkeypatch.setenv("SCOPESYNC_REQUEST_RETRIES", "7")
    assert ScopeSyncSettings(request_retries=1).request_retries == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"request_timeout_s": 0},
        {"fast_poll_interval_s": -1.0},
        {"slow_poll_interval_s": 0},
        {"consolidated_ttl_s": 0},
        {"failure_threshold": 0},
        {"fault_threshold": 0},
        {"connect_attempts": 0},
        {"request_retries": -1},
        {"retry_delay_s": -0.5},
        {"burst_divisor": 0.5},
    ],
)
def test_settings_rejects_invalid_values(overrides):
    with pytest.raises(ValueError):
        ScopeSyncSettings(**overrides)


def test_zero_retries_allowed():
    assert ScopeSyncSettings(request_retries=0, retry_delay_s=0).request_retries == 0
