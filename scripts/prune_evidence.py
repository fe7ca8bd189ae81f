#!/usr/bin/env python3
"""
Prune evidence whose source items no longer exist upstream.

Reads the live source UIDs (one per line) exported by an integration and
deletes evidence of that source kind that is not in the list.

Mail exports can skip senders that haven't been triaged yet. Pass
--sender-scope with a file of already-recognized sender emails so that only
their evidence is eligible for deletion.

Usage:
    # Dry run (default)
    python scripts/prune_evidence.py --source calendar --live-uids live_calendar.txt

    # Mail, restricted to recognized senders
    python scripts/prune_evidence.py --source mail --live-uids live_mail.txt \\
        --sender-scope known_senders.txt --execute
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import logging
from typing import Optional

from sam.services.evidence_repository import EvidenceRepository
from sam.services.evidence_store import EvidenceSource, EvidenceStore
from sam.services.identity_directory import IdentityDirectory

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def read_lines(path: str) -> set[str]:
    """Read non-empty, non-comment lines from a text file."""
    with open(path) as f:
        return {line.strip() for line in f if line.strip() and not line.startswith('#')}


def run_prune(
    source: str,
    live_uids: set[str],
    sender_scope: Optional[set[str]] = None,
    execute: bool = False,
    db_path: str = None,
) -> dict:
    """
    Prune orphaned evidence of one source kind.

    Returns:
        Stats dict
    """
    repository = EvidenceRepository()
    repository.configure(EvidenceStore(db_path), IdentityDirectory())

    deleted = repository.prune_orphans(
        live_uids,
        source=source,
        scoped_to_sender_emails=sender_scope,
        dry_run=not execute,
    )

    mode = "Deleted" if execute else "Would delete"
    logger.info(f"{mode} {deleted} orphaned {source} evidence items ({len(live_uids)} live UIDs)")
    return {"source": source, "deleted": deleted, "executed": execute}


def main():
    import argparse

    parser = argparse.ArgumentParser(
        description='Delete evidence whose source items no longer exist',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--source',
        type=str,
        required=True,
        choices=[s.value for s in EvidenceSource],
        help='Source kind to prune'
    )
    parser.add_argument(
        '--live-uids',
        type=str,
        required=True,
        help='File with one live source UID per line'
    )
    parser.add_argument(
        '--sender-scope',
        type=str,
        default=None,
        help='Mail only: file with one recognized sender email per line'
    )
    parser.add_argument(
        '--execute',
        action='store_true',
        help='Actually delete (default is dry run)'
    )
    parser.add_argument(
        '--db',
        type=str,
        default=None,
        help='Path to evidence.db (default from settings)'
    )
    args = parser.parse_args()

    if args.sender_scope and args.source != EvidenceSource.MAIL.value:
        parser.error('--sender-scope only applies to --source mail')

    if not args.execute:
        logger.info("DRY RUN - no changes will be saved")

    sender_scope = read_lines(args.sender_scope) if args.sender_scope else None
    run_prune(
        source=args.source,
        live_uids=read_lines(args.live_uids),
        sender_scope=sender_scope,
        execute=args.execute,
        db_path=args.db,
    )


if __name__ == '__main__':
    main()
