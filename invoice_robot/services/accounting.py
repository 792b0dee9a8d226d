"""
Accounting system collaborator (Netvisor / Procountor behind a REST gateway).

The core only needs four operations: list purchase invoices, list projects,
download an invoice document and push a project assignment. Retries and
backoff belong to the gateway, not to this client.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, UTC
from typing import Dict, List, Optional
import httpx
from loguru import logger
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from .errors import AccountingSystemError
from ..core.config import settings


class AccountingInvoice(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    invoice_key: int
    invoice_number: str
    vendor_name: str
    amount: float
    invoice_date: date
    due_date: date | None = None
    project_key: int | None = None


class AccountingProject(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    project_key: int
    project_code: str
    name: str
    address: str | None = None
    project_manager_email: str | None = None
    is_active: bool = True


class AccountingSystem(ABC):
    """Interface the fetcher, the analyzer and the approval workflow depend on"""

    @abstractmethod
    def get_purchase_invoices(self, days: int = 30) -> List[AccountingInvoice]:
        pass

    @abstractmethod
    def get_active_projects(self) -> List[AccountingProject]:
        pass

    @abstractmethod
    def download_invoice_document(self, invoice_key: int) -> Optional[bytes]:
        """
        Download the invoice document.

        Returns:
            Document bytes, or None when the invoice has no document
        """
        pass

    @abstractmethod
    def update_invoice_project(self, invoice_key: int, project_key: int) -> bool:
        """
        Assign a project to an invoice in the accounting system.

        Returns:
            True on success, False when the system refused the update
        """
        pass


class HttpAccountingSystem(AccountingSystem):
    """REST client for the accounting gateway"""

    def __init__(self, base_url: str, api_key: str | None = None, timeout: float = 30.0, client: httpx.Client | None = None):
        headers = {"X-Api-Key": api_key} if api_key else {}
        self.client = client or httpx.Client(base_url=base_url, headers=headers, timeout=timeout)

    def _get(self, path: str, **params) -> httpx.Response:
        try:
            response = self.client.get(path, params=params or None)
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            logger.error(f"Accounting system request failed: GET {path}: {e}")
            raise AccountingSystemError(f"GET {path} failed: {e}") from e

    def get_purchase_invoices(self, days: int = 30) -> List[AccountingInvoice]:
        since = (datetime.now(UTC) - timedelta(days=days)).date().isoformat()
        logger.info("Fetching purchase invoices", days=days, since=since)

        response = self._get("/purchase-invoices", since=since)
        invoices = [AccountingInvoice.model_validate(item) for item in response.json()]

        logger.info("Fetched purchase invoices", count=len(invoices))
        return invoices

    def get_active_projects(self) -> List[AccountingProject]:
        logger.info("Fetching active projects")

        response = self._get("/projects", active="true")
        projects = [AccountingProject.model_validate(item) for item in response.json()]

        logger.info("Fetched projects", count=len(projects))
        return projects

    def download_invoice_document(self, invoice_key: int) -> Optional[bytes]:
        path = f"/purchase-invoices/{invoice_key}/document"
        try:
            response = self.client.get(path)
        except httpx.HTTPError as e:
            logger.error(f"Document download failed for invoice {invoice_key}: {e}")
            raise AccountingSystemError(f"GET {path} failed: {e}") from e

        if response.status_code == 404 or not response.content:
            logger.warning("Document not available", invoice_key=invoice_key)
            return None
        if response.is_error:
            raise AccountingSystemError(f"GET {path} returned {response.status_code}")

        logger.info("Document downloaded", invoice_key=invoice_key, size_bytes=len(response.content))
        return response.content

    def update_invoice_project(self, invoice_key: int, project_key: int) -> bool:
        path = f"/purchase-invoices/{invoice_key}/project"
        logger.info("Updating invoice project", invoice_key=invoice_key, project_key=project_key)

        try:
            response = self.client.put(path, json={"projectKey": project_key})
        except httpx.HTTPError as e:
            logger.error(f"Project update failed for invoice {invoice_key}: {e}")
            raise AccountingSystemError(f"PUT {path} failed: {e}") from e

        if response.is_success:
            logger.info("Project assignment updated", invoice_key=invoice_key, project_key=project_key)
            return True

        logger.warning(
            "Accounting system refused project update",
            invoice_key=invoice_key,
            project_key=project_key,
            http_status=response.status_code,
        )
        return False


class InMemoryAccountingSystem(AccountingSystem):
    """
    In-memory accounting system (for local runs and tests).

    Stores invoices, projects and documents in dictionaries and records every
    project update in ``updates``.
    """

    def __init__(
        self,
        invoices: List[AccountingInvoice] | None = None,
        projects: List[AccountingProject] | None = None,
        documents: Dict[int, bytes] | None = None,
        update_succeeds: bool = True,
    ):
        self.invoices = list(invoices or [])
        self.projects = list(projects or [])
        self.documents = dict(documents or {})
        self.update_succeeds = update_succeeds
        self.updates: list[tuple[int, int]] = []

    def get_purchase_invoices(self, days: int = 30) -> List[AccountingInvoice]:
        cutoff = (datetime.now(UTC) - timedelta(days=days)).date()
        return [inv for inv in self.invoices if inv.invoice_date >= cutoff]

    def get_active_projects(self) -> List[AccountingProject]:
        return list(self.projects)

    def download_invoice_document(self, invoice_key: int) -> Optional[bytes]:
        return self.documents.get(invoice_key)

    def update_invoice_project(self, invoice_key: int, project_key: int) -> bool:
        self.updates.append((invoice_key, project_key))
        return self.update_succeeds


def create_accounting_system() -> AccountingSystem:
    """Build the accounting client from settings (in-memory when not configured)"""
    if settings.accounting_api_base_url:
        return HttpAccountingSystem(
            base_url=settings.accounting_api_base_url,
            api_key=settings.accounting_api_key,
            timeout=settings.accounting_timeout_seconds,
        )

    logger.warning(
        "Accounting system not configured - using in-memory accounting system. "
        "Set ACCOUNTING_API_BASE_URL to connect to the real gateway."
    )
    return InMemoryAccountingSystem()
