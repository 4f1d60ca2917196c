"""
Tests for the admin command-line scripts.

Each script opens its own engine; these tests check that the ledger and
document guards are active on that engine, and the exit codes.
"""

import sys
from decimal import Decimal

import pytest

from gescom_kernel.db.engine import get_session, reset_engine
from gescom_kernel.db.immutability import unregister_immutability_listeners
from gescom_kernel.exceptions import ImmutabilityViolationError
from gescom_kernel.models.stock import StockMovement
from gescom_kernel.services.stock_ledger import StockLedger
from scripts import init_db, reconcile_stock, reset_numbering


@pytest.fixture
def shop_db(tmp_path, monkeypatch):
    """Database URL for a script run, with no guards installed beforehand."""
    unregister_immutability_listeners()
    yield f"sqlite:///{tmp_path / 'shop.db'}"
    unregister_immutability_listeners()
    reset_engine()


def _run(monkeypatch, module, *argv) -> int:
    monkeypatch.setattr(sys, "argv", [module.__name__, *argv])
    return module.main()


def _assert_movements_frozen():
    session = get_session()
    try:
        StockLedger(session).adjust("P-1", Decimal("3"), note="count")
        movement = session.query(StockMovement).one()
        movement.quantity = Decimal("9")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
    finally:
        session.rollback()
        session.close()


def test_init_db_seeds_and_guards_ledger(shop_db, monkeypatch, capsys):
    assert _run(monkeypatch, init_db, "--db", shop_db, "--seed") == 0

    assert "taxes created" in capsys.readouterr().out
    _assert_movements_frozen()


def test_reconcile_stock_guards_ledger(shop_db, monkeypatch):
    assert _run(monkeypatch, init_db, "--db", shop_db) == 0
    unregister_immutability_listeners()

    assert _run(monkeypatch, reconcile_stock, "--db", shop_db) == 0

    _assert_movements_frozen()


def test_reset_numbering_requires_confirmation(shop_db, monkeypatch, capsys):
    assert _run(monkeypatch, init_db, "--db", shop_db, "--seed") == 0
    unregister_immutability_listeners()

    assert _run(monkeypatch, reset_numbering, "facture", "--db", shop_db) == 1

    assert "FA-" in capsys.readouterr().out
    _assert_movements_frozen()
