"""Tracker timing constants and platform error codes."""

# Default watch options
DEFAULT_HIGH_ACCURACY = False
DEFAULT_MAX_FIX_AGE_MS = 3000
DEFAULT_TIMEOUT_MS = 20000

# Restart backoff: 2s, 4s, 8s, 16s, then capped
BACKOFF_BASE_MS = 2000
BACKOFF_MAX_MS = 30000

# Upper bound for the widened per-request timeout on retries
RETRY_TIMEOUT_CAP_MS = 30000

# Raw error codes reported by platforms through ``PlatformError.code``
PERMISSION_DENIED_CODE = 1
POSITION_UNAVAILABLE_CODE = 2
TIMEOUT_CODE = 3
