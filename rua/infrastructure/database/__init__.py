"""Async PostgreSQL access with SQLAlchemy 2.

Handlers open a session with ``get_async_session()`` and wrap it in a
repository; the session commits when the block exits cleanly and rolls back
otherwise.
"""
