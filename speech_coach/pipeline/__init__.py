"""WebSocket pipeline between the practice page and the session controller."""
