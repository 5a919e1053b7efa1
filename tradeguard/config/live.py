# tradeguard/config/live.py

# ==================================================
# RETRY / BACKOFF
# ==================================================

RETRY_MAX_ATTEMPTS = 4
RETRY_INITIAL_DELAY_SEC = 0.4
RETRY_MAX_DELAY_SEC = 10.0
RETRY_JITTER_SEC = 0.0  # +/- uniform jitter added to every wait

# ==================================================
# SYMBOL METADATA
# ==================================================

SYMBOL_CACHE_TTL_SEC = 5.0

# ==================================================
# EXECUTION
# ==================================================

DRY_RUN = False

DEFAULT_DEVIATION_POINTS = 10
MAGIC_NUMBER = 100001
ORDER_COMMENT = "tradeguard"

# "reject" | "broker_min"
MIN_LOT_POLICY = "reject"

# ==================================================
# TRAILING STOP
# ==================================================

TRAIL_POLL_INTERVAL_SEC = 0.2
TRAIL_MIN_CHANGE_INTERVAL_SEC = 0.5
TRAIL_STOP_JOIN_TIMEOUT_SEC = 5.0
