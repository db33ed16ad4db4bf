"""Object storage for recorded answers."""
