"""ORM models.  Importing this package registers every table on Base.metadata."""

from gescom_kernel.models.document import (
    Document,
    DocumentLine,
    DocumentRevision,
    DocumentTaxLine,
)
from gescom_kernel.models.numbering import NumberingState
from gescom_kernel.models.settings import Setting
from gescom_kernel.models.stock import (
    MovementReason,
    ProductStockBalance,
    StockMovement,
)
from gescom_kernel.models.tax import TaxGroupMemberModel, TaxGroupModel, TaxModel

__all__ = [
    "Document",
    "DocumentLine",
    "DocumentRevision",
    "DocumentTaxLine",
    "NumberingState",
    "Setting",
    "MovementReason",
    "ProductStockBalance",
    "StockMovement",
    "TaxGroupMemberModel",
    "TaxGroupModel",
    "TaxModel",
]
