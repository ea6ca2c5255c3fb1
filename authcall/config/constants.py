"""Configuration constants for authenticated request execution."""

# Transient statuses retried by default
DEFAULT_RETRY_STATUSES = (429, 500, 502, 503, 504)

# Statuses whose response body is decoded and logged for diagnostics
DEFAULT_DIAGNOSTIC_STATUSES = (400,)

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403

# Retry policy defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_SEC = 0.5
DEFAULT_BACKOFF = 2.0
DEFAULT_MAX_DELAY_SEC = 30.0

# Error messages surfaced to callers
MSG_NO_CONNECTION = "Internet connection not available."
MSG_NETWORK_ERROR = "Error performing network call."
MSG_NULL_RESPONSE = "Error performing network call. Null response."
MSG_SESSION_INVALID = (
    "Error performing network call. User doesn't exist. Re-registering if user was registered."
)
