"""API-related constants."""

# HTTP Headers
REQUEST_ID_HEADER = "X-Request-Id"
AUTHORIZATION_HEADER = "Authorization"

# Pagination
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Request handling
MAX_USER_AGENT_LENGTH = 200
