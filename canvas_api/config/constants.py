"""Pure constants for the Canvas API client. No side effects at import time."""

import sys

# === Identity ===
USER_AGENT = "canvas-api-python"

# === Rate Limit ===
DEFAULT_RATE_LIMIT_INTERVAL_MS = 1000  # Length of one rate-limit window
MAX_RATE_LIMIT_RETRIES = 5  # Retries of a single request before giving up
LOW_QUOTA_THRESHOLD = 50  # Slow down when fewer calls than this remain
RATE_LIMIT_MARKER = "Rate Limit Exceeded"  # Body text of a throttled 403
RATE_LIMIT_REMAINING_HEADER = "x-rate-limit-remaining"

# Call ids wrap back to 1 after this value
MAX_CALL_ID = sys.maxsize

# === Content types ===
JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
BINARY_CONTENT_TYPE = "application/octet-stream"

# === SIS imports ===
SIS_IMPORT_ENDPOINT = "accounts/1/sis_imports"
