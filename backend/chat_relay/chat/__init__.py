"""WebSocket chat rooms: sessions, room registry and event routing."""
