"""Core infrastructure: configuration, timezone helpers and the HTTP client."""
