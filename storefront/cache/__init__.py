"""Redis client used by the redis snapshot store."""
