"""Pydantic models for API payloads.

- **envelope**: the response envelope wrapped around every body
- **users**: user and authentication request/response models
- **system**: health and service information payloads
"""
