"""Application constants."""

USER_AGENT = "civic-alerts/1.0 (+municipal announcements; contact: configured-email)"
COMMANDS = (
    "ingest",
    "match",
)
EXIT_SUCCESS = 0
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

MAX_FILTER_INPUT_CHARS = 10000
MAX_EXTRACT_INPUT_CHARS = 5000
MIN_ZONE_RADIUS_M = 100
MAX_ZONE_RADIUS_M = 1000

MESSAGES_COLLECTION = "messages"
INTERESTS_COLLECTION = "interests"
MATCHES_COLLECTION = "notificationMatches"
OUTBOX_COLLECTION = "notificationOutbox"

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "source",
    "message_id",
    "event",
    "status",
    "attempt",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
