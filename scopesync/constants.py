"""Library-wide defaults for scopesync.

Settings fall back to these values; tests and the CLI import them directly
so the numbers live in exactly one place.
"""

# ============================================================================
# TRANSPORT
# ============================================================================
API_PATH_PREFIX = "/api/v1/"
DEFAULT_REQUEST_TIMEOUT_S = 10.0
DEFAULT_REQUEST_RETRIES = 2
DEFAULT_RETRY_DELAY_S = 1.0
CLIENT_ID_MAX = 65535

# ============================================================================
# CAPABILITY / FAULT ACCOUNTING
# ============================================================================
DEFAULT_FAILURE_THRESHOLD = 3
DEFAULT_FAULT_THRESHOLD = 5

# ============================================================================
# STATE CACHE
# ============================================================================
DEFAULT_CONSOLIDATED_TTL_S = 0.5
CONSOLIDATED_ENDPOINT = "devicestate"

# ============================================================================
# POLLING
# ============================================================================
DEFAULT_FAST_POLL_INTERVAL_S = 1.0
DEFAULT_SLOW_POLL_INTERVAL_S = 10.0
DEFAULT_BURST_DIVISOR = 2.0

# ============================================================================
# LIFECYCLE
# ============================================================================
DEFAULT_CONNECT_ATTEMPTS = 3
DEFAULT_CONNECT_RETRY_DELAY_S = 1.0
CONNECTED_PROPERTY = "connected"
