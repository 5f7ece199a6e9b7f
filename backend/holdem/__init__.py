"""Real-time multi-room Texas Hold'em server."""
