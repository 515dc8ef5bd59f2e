"""Core package for the request pipeline's shared building blocks.

This package provides the components used across all layers of the
Rua application:

- **config**: Centralized configuration management with environment support
- **context**: Request-scoped correlation id and authenticated identity
- **exceptions**: Error kinds, business codes and the exception hierarchy
- **error_classifier**: Total mapping from any failure to a classified error
- **error_context**: Sensitive data sanitization for safe logging
- **security**: Bearer token extraction, verification and issuance
- **passwords**: Argon2id password hashing
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity
"""
