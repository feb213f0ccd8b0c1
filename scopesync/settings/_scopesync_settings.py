from pydantic_settings import BaseSettings, SettingsConfigDict

from scopesync import constants
from scopesync.logging import SCOPESYNC_LOGGER


class ScopeSyncSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="SCOPESYNC_",
        env_nested_delimiter="__",
    )

    # Transport
    request_timeout_s: float = constants.DEFAULT_REQUEST_TIMEOUT_S
    request_retries: int = constants.DEFAULT_REQUEST_RETRIES
    retry_delay_s: float = constants.DEFAULT_RETRY_DELAY_S

    # Capability demotion and fault escalation
    failure_threshold: int = constants.DEFAULT_FAILURE_THRESHOLD
    fault_threshold: int = constants.DEFAULT_FAULT_THRESHOLD

    # State cache
    consolidated_ttl_s: float = constants.DEFAULT_CONSOLIDATED_TTL_S

    # Polling cadence groups
    fast_poll_interval_s: float = constants.DEFAULT_FAST_POLL_INTERVAL_S
    slow_poll_interval_s: float = constants.DEFAULT_SLOW_POLL_INTERVAL_S
    burst_divisor: float = constants.DEFAULT_BURST_DIVISOR

    # Lifecycle
    connect_attempts: int = constants.DEFAULT_CONNECT_ATTEMPTS
    connect_retry_delay_s: float = constants.DEFAULT_CONNECT_RETRY_DELAY_S

    log_level: str = "INFO"

    def model_post_init(self, __context) -> None:
        for field in ("request_timeout_s", "consolidated_ttl_s", "fast_poll_interval_s", "slow_poll_interval_s"):
            if getattr(self, field) <= 0:
                raise ValueError(f"{field} must be positive")
        for field in ("failure_threshold", "fault_threshold", "connect_attempts"):
            if getattr(self, field) < 1:
                raise ValueError(f"{field} must be at least 1")
        if self.request_retries < 0:
            raise ValueError("request_retries must not be negative")
        if self.retry_delay_s < 0 or self.connect_retry_delay_s < 0:
            raise ValueError("retry delays must not be negative")
        if self.burst_divisor < 1:
            raise ValueError("burst_divisor must be at least 1")
        if self.consolidated_ttl_s > self.fast_poll_interval_s:
            SCOPESYNC_LOGGER.warning(
                f"{self.__class__.__name__} consolidated_ttl_s ({self.consolidated_ttl_s}s) exceeds the fast "
                f"poll interval ({self.fast_poll_interval_s}s); fast ticks will reuse cached values"
            )

    @property
    def burst_poll_interval_s(self) -> float:
        return self.fast_poll_interval_s / self.burst_divisor
