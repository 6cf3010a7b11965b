"""Domain layer (pure protocol logic).

- Map derivation, connectivity, move legality and verification live here.
- Avoid I/O: no DB sessions, no HTTP/FastAPI, no Redis.
- Deterministic functions only (time and randomness are passed in as arguments).

The same code runs in the operator service, the settlement layer and the
standalone checker CLI, so there is exactly one implementation of the map.
"""
