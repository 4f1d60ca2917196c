#!/usr/bin/env python3
"""
Reset a document type's counter to its start number.

This is the only place counters go backwards.  Numbers issued since the
start number will be handed out again, so the command refuses to run
without --yes.

Usage:
    python3 scripts/reset_numbering.py facture --yes
    python3 scripts/reset_numbering.py bonLivraison --db sqlite:///shop.db --yes
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("GESCOM_DATABASE_URL", "sqlite:///gescom.db")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reset a document numbering counter")
    parser.add_argument("document_type", help="facture, devis, bonLivraison, commandeFournisseur, avoir")
    parser.add_argument("--db", default=DEFAULT_DB_URL, help=f"Database URL (default: {DEFAULT_DB_URL})")
    parser.add_argument("--yes", action="store_true", help="Confirm the reset")
    args = parser.parse_args()

    from gescom_kernel.db.engine import init_engine_from_url, session_scope
    from gescom_kernel.db.immutability import register_immutability_listeners
    from gescom_kernel.exceptions import UnknownDocumentTypeError
    from gescom_kernel.services.sequence_allocator import SequenceAllocator

    init_engine_from_url(args.db)
    register_immutability_listeners()

    with session_scope() as session:
        allocator = SequenceAllocator(session)
        try:
            preview = allocator.peek_number(args.document_type)
        except UnknownDocumentTypeError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

        if not args.yes:
            print(f"Next {args.document_type} number is {preview}.")
            print("Re-run with --yes to reset the counter to its start number.")
            return 1

        previous = allocator.reset(args.document_type)
        print(f"Counter reset (was {previous}); next number: {allocator.peek_number(args.document_type)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
