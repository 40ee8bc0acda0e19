"""Centralised path constants for the application."""

from pathlib import Path

# Project root is 2 levels up from this file (src/paths.py -> project root)
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Local state (SQLite database) lives here unless DATABASE_URL says otherwise
DATA_DIR = PROJECT_ROOT / "data"
