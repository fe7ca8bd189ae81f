"""
Database path utilities for SAM services.
"""
from pathlib import Path

from config.settings import settings


def get_evidence_db_path() -> str:
    """
    Get the path to the evidence database.

    Creates the parent directory if it doesn't exist.

    Returns:
        Path to the evidence.db file
    """
    db_path = Path(settings.evidence_db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return str(db_path)
