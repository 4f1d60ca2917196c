"""
Document types, statuses and lifecycle rules.

Responsibility:
    Single source of truth for the five commercial document types, the
    business statuses each one may take, the allowed status transitions,
    and which documents move stock (and when).

Architecture position:
    Kernel > Domain -- pure, zero I/O.

Lifecycle (simplified):
    Draft (transient DTO) -> Saved (number allocated, totals frozen)
        -> StockCommitted (for stock-bearing types)
        -> terminal (cancelled / delivered / paid / received ...)

A persisted document always starts in its type's initial status.  Terminal
statuses cannot be left, and no transition rewrites frozen totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from gescom_kernel.exceptions import (
    InvalidStatusTransitionError,
    UnknownDocumentTypeError,
)


class DocumentType(str, Enum):
    """Commercial document type tags."""

    FACTURE = "facture"
    DEVIS = "devis"
    BON_LIVRAISON = "bonLivraison"
    COMMANDE_FOURNISSEUR = "commandeFournisseur"
    AVOIR = "avoir"

    @classmethod
    def parse(cls, value: "DocumentType | str") -> "DocumentType":
        """
        Accept the canonical tag or one of the legacy plural tags.

        Raises:
            UnknownDocumentTypeError: if the tag is not recognised.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        legacy = LEGACY_DOCUMENT_TAGS.get(value)
        if legacy is None:
            raise UnknownDocumentTypeError(str(value))
        return legacy


# Tags used by older settings / tax rows.
LEGACY_DOCUMENT_TAGS: dict[str, DocumentType] = {
    "factures": DocumentType.FACTURE,
    "devis": DocumentType.DEVIS,
    "bonsLivraison": DocumentType.BON_LIVRAISON,
    "commandesFournisseur": DocumentType.COMMANDE_FOURNISSEUR,
    "avoirs": DocumentType.AVOIR,
}

# Document types a tax applies to when its row carries no explicit list.
DEFAULT_TAXABLE_TYPES: frozenset[DocumentType] = frozenset({
    DocumentType.FACTURE,
    DocumentType.DEVIS,
    DocumentType.BON_LIVRAISON,
    DocumentType.COMMANDE_FOURNISSEUR,
})


# origin_type of stock movements not produced by a document
MANUAL_ORIGIN = "manual"


class StockDirection(str, Enum):
    """Direction of an inventory movement."""

    IN = "in"
    OUT = "out"

    @property
    def sign(self) -> int:
        return 1 if self is StockDirection.IN else -1

    def reversed(self) -> "StockDirection":
        return StockDirection.OUT if self is StockDirection.IN else StockDirection.IN


@dataclass(frozen=True)
class Lifecycle:
    """Status graph of one document type."""

    initial: str
    transitions: dict[str, frozenset[str]]
    cancelled: str | None

    @property
    def statuses(self) -> frozenset[str]:
        result = set(self.transitions)
        for targets in self.transitions.values():
            result |= targets
        return frozenset(result)

    def is_terminal(self, status: str) -> bool:
        return not self.transitions.get(status)


LIFECYCLES: dict[DocumentType, Lifecycle] = {
    DocumentType.FACTURE: Lifecycle(
        initial="brouillon",
        transitions={
            "brouillon": frozenset({"envoyee", "payee", "annulee"}),
            "envoyee": frozenset({"payee", "annulee"}),
            "payee": frozenset(),
            "annulee": frozenset(),
        },
        cancelled="annulee",
    ),
    DocumentType.DEVIS: Lifecycle(
        initial="brouillon",
        transitions={
            "brouillon": frozenset({"envoye", "refuse"}),
            "envoye": frozenset({"accepte", "refuse", "expire"}),
            "accepte": frozenset(),
            "refuse": frozenset(),
            "expire": frozenset(),
        },
        cancelled=None,
    ),
    DocumentType.BON_LIVRAISON: Lifecycle(
        initial="prepare",
        transitions={
            "prepare": frozenset({"expedie", "annule"}),
            "expedie": frozenset({"livre", "annule"}),
            "livre": frozenset(),
            "annule": frozenset(),
        },
        cancelled="annule",
    ),
    DocumentType.COMMANDE_FOURNISSEUR: Lifecycle(
        initial="brouillon",
        transitions={
            "brouillon": frozenset({"envoyee", "annulee"}),
            "envoyee": frozenset({"confirmee", "annulee"}),
            "confirmee": frozenset({"recue", "annulee"}),
            "recue": frozenset(),
            "annulee": frozenset(),
        },
        cancelled="annulee",
    ),
    DocumentType.AVOIR: Lifecycle(
        initial="brouillon",
        transitions={
            "brouillon": frozenset({"validee", "annulee"}),
            "validee": frozenset(),
            "annulee": frozenset(),
        },
        cancelled="annulee",
    ),
}


@dataclass(frozen=True)
class StockEffect:
    """
    How a document type moves stock.

    ``trigger_status`` None means the movement is written when the document
    is saved; otherwise when the document reaches that status.
    """

    direction: StockDirection
    trigger_status: str | None = None


STOCK_EFFECTS: dict[DocumentType, StockEffect] = {
    DocumentType.BON_LIVRAISON: StockEffect(StockDirection.OUT),
    DocumentType.FACTURE: StockEffect(StockDirection.OUT),
    DocumentType.COMMANDE_FOURNISSEUR: StockEffect(StockDirection.IN, trigger_status="recue"),
    DocumentType.AVOIR: StockEffect(StockDirection.IN),
}


def lifecycle_for(document_type: DocumentType | str) -> Lifecycle:
    return LIFECYCLES[DocumentType.parse(document_type)]


def stock_effect_for(
    document_type: DocumentType | str,
    source_document_type: DocumentType | str | None = None,
) -> StockEffect | None:
    """
    Stock effect of a document, or None if it does not move stock.

    An invoice generated from a delivery note does not move stock again:
    the goods already left with the delivery note.
    """
    doc_type = DocumentType.parse(document_type)
    if (
        doc_type is DocumentType.FACTURE
        and source_document_type is not None
        and DocumentType.parse(source_document_type) is DocumentType.BON_LIVRAISON
    ):
        return None
    return STOCK_EFFECTS.get(doc_type)


def check_transition(
    document_type: DocumentType | str, from_status: str, to_status: str,
) -> None:
    """
    Validate a status change.

    Raises:
        InvalidStatusTransitionError: if the lifecycle forbids it.
    """
    lifecycle = lifecycle_for(document_type)
    allowed = lifecycle.transitions.get(from_status, frozenset())
    if to_status not in allowed:
        raise InvalidStatusTransitionError(
            DocumentType.parse(document_type).value, from_status, to_status,
        )
