"""Core infrastructure: configuration-backed database, logging, and input validation."""
