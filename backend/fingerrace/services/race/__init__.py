"""Race engine: room store, lifecycle, taps, signal scheduler and sessions.

Rules live here and are imported by HTTP routes and socket handlers, which
should only talk to `store.room_store` and `session.sessions`.
"""
