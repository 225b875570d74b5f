"""Shared constants used by the rtt_status RTT search client."""

DEFAULT_BASE_URL = "https://api.rtt.io/api/v1/json"
BREAKER_NAME = "rtt_api"
AUTH_STATUSES = {401, 403}
CIRCUIT_OPEN_STATUS = 503
MAX_RESPONSE_BODY_LENGTH = 1024
