"""Shared helpers: logging setup and filesystem access."""
