"""Deterministic entity extraction and validation for freight-shipping correspondence."""

__version__ = "0.1.0"
