"""HTTP layer of Rua.

- **main**: application factory and lifespan
- **pipeline**: the per-route stage sequence (authenticate, validate,
  handle, encode)
- **validation**: JSON body and query string validation
- **middleware**: correlation ids, access logging, exception handlers
- **routes**: the domain handlers
- **schemas**: envelope and request/response models
- **utils**: envelope codec and orjson rendering
"""
