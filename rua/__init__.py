"""Rua - enveloped HTTP API with bearer authentication.

Rua is a FastAPI service whose every response, success or failure, travels in
one versioned envelope carrying a business status code next to the HTTP one.

Architecture Overview:
- **API Layer**: FastAPI routes driven through a fixed request pipeline
- **Core Layer**: Configuration, request context, errors, tokens and logging
- **Infrastructure Layer**: Async PostgreSQL persistence for user records

Request pipeline:
- **Correlation**: A fresh request id per request, echoed in header and body
- **Authentication**: Stateless bearer token verification
- **Validation**: Pydantic models declared per route, all failures reported
- **Normalization**: One envelope shape built in one place

Internal failure detail is logged server-side and never reaches the caller.
"""
