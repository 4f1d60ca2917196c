"""
TaxCatalog -- in-memory, ordered index of configured taxes and tax groups.

Responsibility:
    Supply the ordered, filtered tax list applicable to a document type, and
    expand tax groups into their member taxes.

Ordering:
    Taxes are sorted by ascending ``order``; equal orders keep the sequence in
    which the taxes were given to the catalog (insertion order).  The sort is
    done once at construction.

The catalog is immutable and read-only at calculation time.  Building it from
the tax configuration store (with legacy-row migration) is
TaxCatalogService's job.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping

from gescom_kernel.domain.documents import DocumentType
from gescom_kernel.domain.taxes import (
    PercentageTax,
    Tax,
    TaxGroup,
    applies_to,
)
from gescom_kernel.logging_config import get_logger

logger = get_logger("engines.tax_catalog")


class TaxCatalog:
    """
    Ordered index of taxes keyed by id.

    Contract:
        - get_applicable_taxes() returns active taxes configured for the
          document type, ascending ``order``, ties by insertion order.
        - Read-only; an empty result is valid.
    """

    def __init__(self, taxes: Iterable[Tax] = (), groups: Iterable[TaxGroup] = ()):
        indexed = list(enumerate(taxes))
        # Stable sort: (order, insertion index)
        indexed.sort(key=lambda pair: (pair[1].order, pair[0]))
        self._ordered: tuple[Tax, ...] = tuple(tax for _, tax in indexed)

        by_id: dict[str, Tax] = {}
        for tax in self._ordered:
            if tax.tax_id in by_id:
                raise ValueError(f"Duplicate tax id in catalog: {tax.tax_id}")
            by_id[tax.tax_id] = tax
        self._by_id: Mapping[str, Tax] = MappingProxyType(by_id)

        self._groups: Mapping[str, TaxGroup] = MappingProxyType(
            {group.group_id: group for group in groups}
        )

    @classmethod
    def empty(cls) -> "TaxCatalog":
        return cls()

    @property
    def taxes(self) -> tuple[Tax, ...]:
        """All taxes (active or not) in application order."""
        return self._ordered

    @property
    def groups(self) -> tuple[TaxGroup, ...]:
        return tuple(self._groups.values())

    def __len__(self) -> int:
        return len(self._ordered)

    def __contains__(self, tax_id: object) -> bool:
        return tax_id in self._by_id

    def get(self, tax_id: str) -> Tax | None:
        return self._by_id.get(tax_id)

    def get_group(self, group_id: str) -> TaxGroup | None:
        return self._groups.get(group_id)

    def get_applicable_taxes(self, document_type: DocumentType | str) -> tuple[Tax, ...]:
        """Active taxes for ``document_type`` in application order."""
        doc_type = DocumentType.parse(document_type)
        return tuple(tax for tax in self._ordered if applies_to(tax, doc_type))

    def standard_taxes(self, document_type: DocumentType | str) -> tuple[Tax, ...]:
        """Applicable taxes flagged as standard (auto-applied)."""
        return tuple(
            tax for tax in self.get_applicable_taxes(document_type) if tax.is_standard
        )

    def select(
        self, tax_ids: Iterable[str], document_type: DocumentType | str | None = None,
    ) -> tuple[Tax, ...]:
        """
        Explicitly selected taxes, in catalog application order.

        Unknown ids are ignored and logged; inactive taxes and taxes not
        configured for ``document_type`` (when given) are dropped.
        """
        wanted = set(tax_ids)
        unknown = wanted.difference(self._by_id)
        if unknown:
            logger.warning("unknown_tax_ids_ignored", extra={"tax_ids": sorted(unknown)})
        result = []
        for tax in self._ordered:
            if tax.tax_id not in wanted or not tax.active:
                continue
            if document_type is not None and not applies_to(tax, document_type):
                continue
            result.append(tax)
        return tuple(result)

    def expand_group(
        self, group_id: str, document_type: DocumentType | str | None = None,
    ) -> tuple[Tax, ...]:
        """
        Member taxes of a group, in ``order_in_group`` order.

        A member's ``calculation_base_override`` replaces the tax's own base
        (percentage taxes only).  Inactive groups expand to nothing; inactive
        member taxes and members not configured for ``document_type`` are
        skipped.
        """
        group = self._groups.get(group_id)
        if group is None or not group.active:
            return ()

        members = sorted(
            enumerate(group.members),
            key=lambda pair: (pair[1].order_in_group, pair[0]),
        )
        result: list[Tax] = []
        for _, member in members:
            tax = self._by_id.get(member.tax_id)
            if tax is None:
                logger.warning("tax_group_member_missing", extra={
                    "group_id": group_id, "tax_id": member.tax_id,
                })
                continue
            if not tax.active:
                continue
            if document_type is not None and not applies_to(tax, document_type):
                continue
            if member.calculation_base_override is not None and isinstance(tax, PercentageTax):
                tax = tax.with_base(member.calculation_base_override)
            result.append(tax)
        return tuple(result)
