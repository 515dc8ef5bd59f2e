"""Infrastructure layer: PostgreSQL persistence for the API handlers.

- **database.base**: declarative base and shared columns
- **database.models**: ORM models
- **database.session**: engine, sessions and the health probe
- **database.repository**: generic and per-model repositories
"""
