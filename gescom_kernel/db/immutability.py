"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity            | When Immutable               | Why
------------------|------------------------------|--------------------------------
StockMovement     | ALWAYS (from creation)       | Ledger history; corrections are
                  |                              | compensating rows
DocumentRevision  | ALWAYS (from creation)       | Snapshot of superseded totals
Document          | number / document_type       | Number identifies the document
                  | totals, unless revision bumps| Frozen totals change only
                  |                              | through an amendment

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL reaches
the database; the checks below raise ImmutabilityViolationError and the flush
aborts.  Bulk ``UPDATE`` statements bypass these hooks.

updated_at is bookkeeping and always allowed to change.

===============================================================================
USAGE
===============================================================================

    from gescom_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to forge history call unregister_immutability_listeners().
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from gescom_kernel.exceptions import ImmutabilityViolationError
from gescom_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_FIELDS = frozenset({"updated_at"})

_TOTAL_FIELDS = ("net_total", "tax_total", "grand_total")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_append_only_update(mapper, connection, target):
    """Block any non-audit field change on append-only entities."""
    entity_type = type(target).__name__
    for attr in inspect(target).attrs:
        if attr.key in _AUDIT_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                entity_type, target.id, "UPDATE",
                f"{entity_type} rows are immutable (field '{attr.key}')",
                field=attr.key,
            )


def _check_append_only_delete(mapper, connection, target):
    entity_type = type(target).__name__
    raise _blocked(
        entity_type, target.id, "DELETE",
        f"{entity_type} rows cannot be deleted",
    )


def _check_document_frozen_fields(mapper, connection, target):
    """
    Guard a saved document's identity and frozen totals.

    number and document_type never change.  A totals change is accepted only
    when ``revision`` changes in the same flush (the amendment path).
    """
    for key in ("number", "document_type"):
        if get_history(target, key).deleted:
            raise _blocked(
                "Document", target.id, "UPDATE",
                f"Cannot change '{key}' of a saved document",
                field=key,
            )

    totals_changed = [
        key for key in _TOTAL_FIELDS if get_history(target, key).deleted
    ]
    if not totals_changed:
        return

    revision_history = get_history(target, "revision")
    if revision_history.deleted and revision_history.added:
        old_revision = revision_history.deleted[0]
        new_revision = revision_history.added[0]
        if new_revision > old_revision:
            return

    raise _blocked(
        "Document", target.id, "UPDATE",
        "Frozen totals can only change through an amendment",
        field=totals_changed[0],
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are importable and before any flush.  Idempotent.
    """
    from gescom_kernel.models.document import Document, DocumentRevision
    from gescom_kernel.models.stock import StockMovement

    for model in (StockMovement, DocumentRevision):
        if not event.contains(model, "before_update", _check_append_only_update):
            event.listen(model, "before_update", _check_append_only_update)
        if not event.contains(model, "before_delete", _check_append_only_delete):
            event.listen(model, "before_delete", _check_append_only_delete)

    if not event.contains(Document, "before_update", _check_document_frozen_fields):
        event.listen(Document, "before_update", _check_document_frozen_fields)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: tests only.
    """
    from gescom_kernel.models.document import Document, DocumentRevision
    from gescom_kernel.models.stock import StockMovement

    for model in (StockMovement, DocumentRevision):
        _safe_remove_listener(model, "before_update", _check_append_only_update)
        _safe_remove_listener(model, "before_delete", _check_append_only_delete)

    _safe_remove_listener(Document, "before_update", _check_document_frozen_fields)
