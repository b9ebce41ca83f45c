"""Loads the project's ``.env`` so settings such as ``LOG_LEVEL`` or
``LEDGER_MAX_CAS_ATTEMPTS`` reach ``AppConfig.from_env`` through ``os.getenv``.
Values already present in the environment always win."""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

__all__ = ["PROJECT_ROOT", "load_project_dotenv"]

# utils/ sits directly under the project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent


def load_project_dotenv(root: Path | None = None) -> bool:
    """Load ``<root>/.env`` if it exists. Returns whether a file was loaded."""
    dotenv_path = (root or PROJECT_ROOT) / ".env"
    if not dotenv_path.is_file():
        return False
    return load_dotenv(dotenv_path=dotenv_path, override=False)
