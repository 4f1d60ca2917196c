"""Services for the document kernel (write side)."""

from gescom_kernel.services.document_service import DocumentService
from gescom_kernel.services.sequence_allocator import SequenceAllocator, format_number
from gescom_kernel.services.settings_service import SettingsService
from gescom_kernel.services.stock_ledger import StockLedger
from gescom_kernel.services.tax_catalog_service import TaxCatalogService

__all__ = [
    "DocumentService",
    "SequenceAllocator",
    "SettingsService",
    "StockLedger",
    "TaxCatalogService",
    "format_number",
]
