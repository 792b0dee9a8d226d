from datetime import datetime, UTC
from loguru import logger
from pydantic import BaseModel
from .accounting import AccountingSystem
from .storage import InvoiceStoreBase
from ..core.config import settings
from ..models import Invoice, InvoiceStatus, Project


class FetchRunSummary(BaseModel):
    projects_synced: int = 0
    invoices_seen: int = 0
    invoices_added: int = 0


class InvoiceFetcher:
    """
    Pulls the project catalog and recent purchase invoices from the accounting system.

    New invoices are stored in Discovered status for the analyzer; invoices already
    known by their accounting key are left alone. Documents are not downloaded here,
    the analyzer fetches them in memory when it needs the text.
    """

    def __init__(self, store: InvoiceStoreBase, accounting: AccountingSystem):
        self.store = store
        self.accounting = accounting

    def run(self, days: int | None = None) -> FetchRunSummary:
        days = days if days is not None else settings.fetch_days
        logger.info("InvoiceFetcher starting", time=datetime.now(UTC).isoformat(), days=days)
        summary = FetchRunSummary()

        try:
            summary.projects_synced = self.sync_projects()

            invoices = self.accounting.get_purchase_invoices(days)
            summary.invoices_seen = len(invoices)

            for dto in invoices:
                if self.store.get_invoice_by_key(dto.invoice_key) is not None:
                    logger.debug("Invoice already stored", invoice_number=dto.invoice_number)
                    continue

                self.store.add_invoice(Invoice(
                    netvisor_invoice_key=dto.invoice_key,
                    invoice_number=dto.invoice_number,
                    vendor_name=dto.vendor_name,
                    amount=dto.amount,
                    invoice_date=dto.invoice_date,
                    due_date=dto.due_date,
                    status=InvoiceStatus.DISCOVERED,
                ))
                summary.invoices_added += 1
                logger.info("New invoice added", invoice_number=dto.invoice_number, vendor=dto.vendor_name)

        except Exception as e:
            logger.exception("InvoiceFetcher run failed: {error}", error=str(e))
            raise

        logger.info(
            "InvoiceFetcher finished",
            new_invoices=summary.invoices_added,
            total_invoices=summary.invoices_seen,
        )
        return summary

    def sync_projects(self) -> int:
        """Upsert the accounting system's projects into the local catalog"""
        logger.info("Synchronising projects")

        projects = [
            Project(
                netvisor_project_key=p.project_key,
                project_code=p.project_code,
                name=p.name,
                address=p.address,
                project_manager_email=p.project_manager_email,
                is_active=p.is_active,
            )
            for p in self.accounting.get_active_projects()
        ]
        count = self.store.save_projects(projects)

        logger.info("Projects synchronised", count=count)
        return count
