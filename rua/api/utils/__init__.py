"""API helpers: envelope construction and orjson rendering."""
