#!/usr/bin/env python3
"""
Re-resolve evidence participants after the identity directory changed.

The problem it solves:
- When a person gains a new email alias, earlier evidence that mentions that
  address still shows the participant as unverified and unlinked.
- When a person is removed, evidence keeps pointing at them.

This script rebuilds the identity index from the current directory export,
re-verifies every participant with an email, and rewrites only the evidence
items whose verification or linked people changed.

Usage:
    # Dry run (default) - see how many items would change
    python scripts/reresolve_evidence.py

    # Actually apply changes
    python scripts/reresolve_evidence.py --execute

    # Use a different directory export
    python scripts/reresolve_evidence.py --directory /path/to/identities.json --execute
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging

from sam.services.evidence_repository import EvidenceRepository
from sam.services.evidence_store import EvidenceStore
from sam.services.identity_directory import IdentityDirectory

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def run_reresolution(
    execute: bool = False,
    db_path: str = None,
    directory_path: str = None,
) -> dict:
    """
    Re-resolve all evidence against the current directory.

    Args:
        execute: If False, compute changes and roll them back
        db_path: Evidence database (default from settings)
        directory_path: Identity directory export (default from settings)

    Returns:
        Stats dict
    """
    repository = EvidenceRepository()
    repository.configure(EvidenceStore(db_path), IdentityDirectory(directory_path))

    stats = repository.refresh_participant_resolution(dry_run=not execute)

    mode = "Updated" if execute else "Would update"
    logger.info(f"Examined {stats.examined} evidence items with email participants")
    logger.info(f"{mode} {stats.updated} evidence items")
    return {"examined": stats.examined, "updated": stats.updated, "executed": execute}


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description='Re-resolve evidence participants against the identity directory',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # See what would change (dry run)
    python scripts/reresolve_evidence.py

    # Actually apply changes
    python scripts/reresolve_evidence.py --execute
        """
    )
    parser.add_argument(
        '--execute',
        action='store_true',
        help='Actually apply changes (default is dry run)'
    )
    parser.add_argument(
        '--db',
        type=str,
        default=None,
        help='Path to evidence.db (default from settings)'
    )
    parser.add_argument(
        '--directory',
        type=str,
        default=None,
        help='Path to the identity directory JSON export (default from settings)'
    )
    args = parser.parse_args()

    if not args.execute:
        logger.info("DRY RUN - no changes will be saved")

    run_reresolution(execute=args.execute, db_path=args.db, directory_path=args.directory)


if __name__ == '__main__':
    main()
