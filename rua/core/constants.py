"""Core application constants."""

# Time constants
MILLISECONDS_PER_SECOND = 1000

# Security and redaction
REDACTED = "[REDACTED]"

# Public message for every internal failure, whatever the cause
INTERNAL_ERROR_MESSAGE = "an internal error occurred"

# HS256 keys shorter than the digest weaken the signature
JWT_SECRET_MIN_LENGTH = 32

# Envelope version when the build did not stamp one
UNKNOWN_VERSION = "unknown"

# Headers that never reach a log sink unredacted
SENSITIVE_HEADERS = {
    "authorization",
    "cookie",
    "x-api-key",
    "x-auth-token",
    "x-csrf-token",
    "set-cookie",
    "x-secret-key",
    "proxy-authorization",
}
