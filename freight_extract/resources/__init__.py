"""Bundled YAML rule data."""

from pathlib import Path

RESOURCES_DIR = Path(__file__).resolve().parent


def resource_path(name: str, override: str | Path | None = None) -> Path:
    """Return ``override`` when set, else the bundled resource ``name``."""
    if override:
        return Path(override)
    return RESOURCES_DIR / name
