"""Quiz timing and ranking constants shared across core and server layers."""

DEFAULT_TIME_PER_QUESTION_SECONDS: int = 30
MIN_OPTION_COUNT: int = 2

SYNC_TICK_INTERVAL_MS: int = 500
CLOCK_SYNC_INTERVAL_MS: int = 30_000
# Weight given to a fresh offset sample when smoothing.
CLOCK_SMOOTHING_WEIGHT: float = 0.3
CLOCK_SYNCED_THRESHOLD_MS: int = 5_000

TOP_RANKINGS_LIMIT: int = 5
