"""Request-handling services."""
