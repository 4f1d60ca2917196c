#!/usr/bin/env python3
"""
Create the schema and, optionally, seed a working configuration.

Seeding creates the numbering counters from the configured defaults, the
standard Tunisian taxes (timbre fiscal 1.000 on invoices, then TVA 19% on
HT plus the previous taxes) and the default settings rows.  Existing rows
are left untouched.

Usage:
    python3 scripts/init_db.py                          # schema only
    python3 scripts/init_db.py --seed                   # schema + seed
    python3 scripts/init_db.py --db sqlite:///shop.db --config my.yaml --seed
"""

import argparse
import os
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

DEFAULT_DB_URL = os.environ.get("GESCOM_DATABASE_URL", "sqlite:///gescom.db")


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Create the document engine schema")
    p.add_argument("--db", default=DEFAULT_DB_URL, help=f"Database URL (default: {DEFAULT_DB_URL})")
    p.add_argument("--config", help="YAML configuration layered over the bundled defaults")
    p.add_argument("--seed", action="store_true", help="Seed numbering, taxes and settings")
    return p.parse_args()


def seed(session, config) -> None:
    from sqlalchemy import func, select

    from gescom_config.loader import GENERAL_KEY, STOCK_KEY
    from gescom_kernel.domain.documents import DocumentType
    from gescom_kernel.models.tax import TaxModel
    from gescom_kernel.services.sequence_allocator import SequenceAllocator
    from gescom_kernel.services.settings_service import SettingsService
    from gescom_kernel.services.tax_catalog_service import TaxCatalogService

    created = SequenceAllocator(session, numbering_defaults=config.numbering).initialize()
    print(f"  numbering counters created: {', '.join(created) or 'none'}")

    if session.execute(select(func.count(TaxModel.id))).scalar_one() == 0:
        taxes = TaxCatalogService(session)
        taxes.add_tax(
            "Timbre fiscal", "fixed", Decimal("1.000"),
            applicable_document_types=[DocumentType.FACTURE], order=1,
        )
        taxes.add_tax(
            "TVA 19%", "percentage", Decimal("19"),
            calculation_base="totalHTWithPreviousTaxes", order=2, is_standard=True,
        )
        print("  taxes created: Timbre fiscal, TVA 19%")
    else:
        print("  taxes already configured")

    settings = SettingsService(session, config)
    if settings.get_or_default(STOCK_KEY) is None:
        settings.set(STOCK_KEY, {"allowNegativeStock": config.allow_negative_stock})
    if settings.get_or_default(GENERAL_KEY) is None:
        settings.set(GENERAL_KEY, {
            "autoEnableFodec": config.invoice.auto_enable_fodec,
            "useEcheanceDate": config.invoice.use_due_date,
            "allowNegativeStock": config.allow_negative_stock,
        })


def main() -> int:
    args = _parse_args()

    from gescom_config.loader import get_default_config, load_config_file
    from gescom_kernel.db.engine import create_tables, init_engine_from_url, session_scope
    from gescom_kernel.db.immutability import register_immutability_listeners

    init_engine_from_url(args.db)
    register_immutability_listeners()
    create_tables()
    print(f"Schema ready on {args.db}")

    if args.seed:
        config = load_config_file(args.config) if args.config else get_default_config()
        print("Seeding...")
        with session_scope() as session:
            seed(session, config)
        print("Done.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
