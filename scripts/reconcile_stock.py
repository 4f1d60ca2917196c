#!/usr/bin/env python3
"""
Check that every cached stock balance equals the sum of its movements.

Exits with status 1 if any product is inconsistent.

Usage:
    python3 scripts/reconcile_stock.py
    python3 scripts/reconcile_stock.py --product P-001 --history
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("GESCOM_DATABASE_URL", "sqlite:///gescom.db")


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile stock balances with the movement ledger")
    parser.add_argument("--db", default=DEFAULT_DB_URL, help=f"Database URL (default: {DEFAULT_DB_URL})")
    parser.add_argument("--product", help="Only this product")
    parser.add_argument("--history", action="store_true", help="Print the movement history of --product")
    args = parser.parse_args()

    from gescom_kernel.db.engine import get_session, init_engine_from_url
    from gescom_kernel.db.immutability import register_immutability_listeners
    from gescom_kernel.services.stock_ledger import StockLedger

    init_engine_from_url(args.db)
    register_immutability_listeners()
    session = get_session()
    try:
        ledger = StockLedger(session)
        results = ledger.reconcile(args.product)

        if args.history and args.product:
            print(f"History of {args.product}:")
            for m in ledger.history(args.product):
                origin = m.document_number or m.origin_type
                print(
                    f"  {m.movement_date:%Y-%m-%d %H:%M}  {m.direction.value:<3} "
                    f"{m.quantity:>12}  -> {m.balance_after:>12}  {m.reason:<12} {origin}"
                )

        mismatches = [r for r in results if not r.is_consistent]
        print(f"{len(results)} product(s) checked, {len(mismatches)} mismatch(es)")
        for r in mismatches:
            print(
                f"  {r.product_id}: cached {r.cached_balance}, "
                f"ledger {r.ledger_balance} ({r.movement_count} movements)"
            )
        return 1 if mismatches else 0
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
