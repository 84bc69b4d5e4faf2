"""Utility helpers: configuration and logging."""
