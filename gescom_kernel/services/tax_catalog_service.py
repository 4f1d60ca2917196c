"""
Tax Catalog Service - loads the tax configuration store into a TaxCatalog.

Rows in the ``taxes`` / ``tax_groups`` tables may have been written by older
versions of the application.  Migration happens here, at load time:

    - legacy calculation base spellings are normalised
      (HT, HT_plus_taxes_precedentes, HT_plus_previous_taxes, ...);
    - a missing applicable-type list means the four original document types;
    - legacy plural document tags (factures, bonsLivraison ...) are mapped.

A row that cannot be interpreted is skipped and logged as a MalformedTaxError
so the rest of the catalog stays usable.  Stored rows are never rewritten.
"""

from decimal import Decimal
from typing import Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from gescom_engines.tax_catalog import TaxCatalog
from gescom_kernel.domain.documents import DEFAULT_TAXABLE_TYPES, DocumentType
from gescom_kernel.domain.taxes import (
    CalculationBase,
    FixedTax,
    PercentageTax,
    Tax,
    TaxGroup,
    TaxGroupMember,
    TaxKind,
)
from gescom_kernel.exceptions import MalformedTaxError, UnknownDocumentTypeError
from gescom_kernel.logging_config import get_logger
from gescom_kernel.models.tax import TaxGroupMemberModel, TaxGroupModel, TaxModel

logger = get_logger("services.tax_catalog")


def _document_types(tax_id: str, raw: Sequence[str] | None) -> frozenset[DocumentType]:
    if raw is None:
        return DEFAULT_TAXABLE_TYPES
    if not isinstance(raw, (list, tuple)):
        raise MalformedTaxError(tax_id, f"applicable document types must be a list, got {raw!r}")
    result = set()
    for tag in raw:
        try:
            result.add(DocumentType.parse(tag))
        except UnknownDocumentTypeError:
            logger.warning("tax_document_tag_ignored", extra={"tax_id": tax_id, "tag": tag})
    return frozenset(result)


def tax_from_row(row: TaxModel) -> Tax:
    """
    Typed view of one stored tax, migrating legacy values.

    Raises:
        MalformedTaxError: if the row cannot be interpreted.
    """
    tax_id = str(row.id)
    try:
        kind = TaxKind(row.kind)
    except ValueError:
        raise MalformedTaxError(tax_id, f"unknown kind {row.kind!r}") from None

    value = row.value
    if value is None or value < 0:
        raise MalformedTaxError(tax_id, f"invalid value {value!r}")

    applicable = _document_types(tax_id, row.applicable_document_types)

    if kind is TaxKind.FIXED:
        return FixedTax(
            tax_id=tax_id,
            name=row.name,
            value=Decimal(value),
            applicable_document_types=applicable,
            order=row.tax_order,
            active=row.active,
            is_standard=row.is_standard,
        )

    try:
        base = CalculationBase.parse(row.calculation_base)
    except ValueError as exc:
        raise MalformedTaxError(tax_id, str(exc)) from exc
    return PercentageTax(
        tax_id=tax_id,
        name=row.name,
        value=Decimal(value),
        calculation_base=base,
        applicable_document_types=applicable,
        order=row.tax_order,
        active=row.active,
        is_standard=row.is_standard,
    )


def group_from_row(row: TaxGroupModel) -> TaxGroup:
    group_id = str(row.id)
    members = []
    for member in row.members:
        override = None
        if member.calculation_base_override is not None:
            try:
                override = CalculationBase.parse(member.calculation_base_override)
            except ValueError as exc:
                raise MalformedTaxError(group_id, str(exc)) from exc
        members.append(TaxGroupMember(
            tax_id=str(member.tax_id),
            order_in_group=member.order_in_group,
            calculation_base_override=override,
        ))
    return TaxGroup(
        group_id=group_id,
        name=row.name,
        members=tuple(members),
        description=row.description,
        active=row.active,
    )


class TaxCatalogService:
    """
    Builds TaxCatalog snapshots and writes tax configuration rows.

    Never commits; the caller owns the transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    def load_catalog(self) -> TaxCatalog:
        """Load every tax and group, skipping malformed rows."""
        rows = self._session.execute(
            select(TaxModel).order_by(TaxModel.position, TaxModel.created_at)
        ).scalars().all()

        taxes: list[Tax] = []
        skipped = 0
        for row in rows:
            try:
                taxes.append(tax_from_row(row))
            except MalformedTaxError as exc:
                skipped += 1
                logger.warning("malformed_tax_skipped", extra={
                    "tax_id": exc.tax_id,
                    "reason": exc.reason,
                    "error_code": exc.code,
                })

        groups: list[TaxGroup] = []
        for row in self._session.execute(select(TaxGroupModel)).scalars():
            try:
                groups.append(group_from_row(row))
            except MalformedTaxError as exc:
                skipped += 1
                logger.warning("malformed_tax_group_skipped", extra={
                    "group_id": exc.tax_id,
                    "reason": exc.reason,
                    "error_code": exc.code,
                })

        logger.info("tax_catalog_loaded", extra={
            "tax_count": len(taxes),
            "group_count": len(groups),
            "skipped_count": skipped,
        })
        return TaxCatalog(taxes, groups)

    def add_tax(
        self,
        name: str,
        kind: TaxKind | str,
        value: Decimal,
        *,
        calculation_base: CalculationBase | str | None = None,
        applicable_document_types: Iterable[DocumentType | str] | None = None,
        order: int = 0,
        active: bool = True,
        is_standard: bool = False,
    ) -> Tax:
        """
        Store a new tax and return its typed view.

        Fixed taxes never store a calculation base.  ``position`` is the
        insertion index, used to break ties between equal orders.
        """
        kind = TaxKind(kind)
        if kind is TaxKind.FIXED:
            base_value = None
        else:
            base_value = CalculationBase.parse(calculation_base).value
        applicable = None
        if applicable_document_types is not None:
            applicable = [DocumentType.parse(t).value for t in applicable_document_types]

        position = self._session.execute(select(func.count(TaxModel.id))).scalar_one()
        row = TaxModel(
            name=name,
            kind=kind.value,
            value=value,
            calculation_base=base_value,
            applicable_document_types=applicable,
            tax_order=order,
            position=position,
            active=active,
            is_standard=is_standard,
        )
        self._session.add(row)
        self._session.flush()
        logger.info("tax_created", extra={
            "tax_id": str(row.id), "tax_name": name, "kind": kind.value, "value": str(value),
        })
        return tax_from_row(row)

    def add_group(
        self,
        name: str,
        members: Sequence[TaxGroupMember],
        *,
        description: str | None = None,
        active: bool = True,
    ) -> TaxGroup:
        """Store a tax group with its ordered members."""
        row = TaxGroupModel(name=name, description=description, active=active)
        for member in members:
            override = member.calculation_base_override
            row.members.append(TaxGroupMemberModel(
                tax_id=member.tax_id,
                order_in_group=member.order_in_group,
                calculation_base_override=override.value if override is not None else None,
            ))
        self._session.add(row)
        self._session.flush()
        logger.info("tax_group_created", extra={
            "group_id": str(row.id), "group_name": name, "member_count": len(members),
        })
        return group_from_row(row)

