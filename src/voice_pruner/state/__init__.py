"""In-memory mirror of guild state."""
