"""Type aliases for loosely structured data passed between layers.

Everything aliased here must stay JSON-serializable: these values end up in
log records, span attributes or response envelopes.
"""

from typing import Any

# Any value that survives a JSON round trip unchanged
type JsonValue = (
    dict[str, "JsonValue"] | list["JsonValue"] | str | int | float | bool | None
)

# Diagnostic detail attached to an error; logged, never sent to the caller
type ErrorContext = dict[str, Any]

