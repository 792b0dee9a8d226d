from .store_base import AnalysisBatch, BatchCommitResult, InvoiceStoreBase
from .invoices_sqlite import SQLiteInvoiceStore

__all__ = ["AnalysisBatch", "BatchCommitResult", "InvoiceStoreBase", "SQLiteInvoiceStore"]
