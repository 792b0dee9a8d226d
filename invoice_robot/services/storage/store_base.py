"""
Abstract base class for invoice robot persistence.

Defines the interface that storage backends must implement, enabling dependency
injection and easy swapping of storage backends. The store owns the commit
boundaries the core relies on:

- one atomic commit per analysis batch (with a per-invoice version check)
- one atomic, conditional commit per approval resolution
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence
from ...models import ApprovalRequest, ApprovalStatus, Invoice, InvoiceStatus, Project


@dataclass
class AnalysisBatch:
    """Changes produced by one analyzer run, committed together"""
    invoices: List[Invoice] = field(default_factory=list)
    approval_requests: List[ApprovalRequest] = field(default_factory=list)

    def add(self, invoice: Invoice, approval_request: ApprovalRequest | None = None) -> None:
        self.invoices.append(invoice)
        if approval_request is not None:
            self.approval_requests.append(approval_request)


@dataclass
class BatchCommitResult:
    saved_invoice_ids: List[int] = field(default_factory=list)
    conflicted_invoice_ids: List[int] = field(default_factory=list)
    created_approvals: List[ApprovalRequest] = field(default_factory=list)


class InvoiceStoreBase(ABC):
    """
    Abstract base class for invoice, project and approval storage.

    Implementations can use:
    - SQLite (for single-instance deployments)
    - SQL Server / PostgreSQL (for production)
    """

    # Projects

    @abstractmethod
    def save_projects(self, projects: Sequence[Project]) -> int:
        """
        Insert new projects and refresh name, address and active flag of existing ones.

        Returns:
            Number of projects written
        """
        pass

    @abstractmethod
    def list_projects(self, active_only: bool = True) -> List[Project]:
        pass

    @abstractmethod
    def get_project_by_key(self, project_key: int) -> Optional[Project]:
        pass

    # Invoices

    @abstractmethod
    def add_invoice(self, invoice: Invoice) -> Invoice:
        """Insert a new invoice and return it with its id set"""
        pass

    @abstractmethod
    def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
        pass

    @abstractmethod
    def get_invoice_by_key(self, invoice_key: int) -> Optional[Invoice]:
        pass

    @abstractmethod
    def list_invoices(self, status: InvoiceStatus | None = None) -> List[Invoice]:
        pass

    @abstractmethod
    def delete_invoice(self, invoice_id: int) -> bool:
        """Delete an invoice and (by cascade) its approval requests"""
        pass

    @abstractmethod
    def save_analysis_batch(self, batch: AnalysisBatch) -> BatchCommitResult:
        """
        Persist analyzer results in a single commit.

        Each invoice is written only if its stored version still matches; an
        invoice that was changed concurrently is skipped together with its
        approval request and reported in ``conflicted_invoice_ids``.
        """
        pass

    # Approval requests

    @abstractmethod
    def get_approval_by_token(self, token: str) -> Optional[ApprovalRequest]:
        pass

    @abstractmethod
    def list_approvals(self, status: ApprovalStatus | None = None) -> List[ApprovalRequest]:
        pass

    @abstractmethod
    def claim_approval(self, token: str, stale_before: datetime) -> Optional[ApprovalRequest]:
        """
        Take the exclusive right to resolve a Pending request.

        Succeeds only while the request is Pending and unclaimed, or its claim was
        taken before ``stale_before``. Returns the claimed request (with a fresh
        ``claimed_by``) or None when the request is resolved or held by another
        resolver.
        """
        pass

    @abstractmethod
    def release_approval(self, approval: ApprovalRequest) -> bool:
        """Give up a claim without resolving, so the request can be retried"""
        pass

    @abstractmethod
    def complete_approval(self, approval: ApprovalRequest, invoice: Invoice) -> bool:
        """
        Atomically write a resolved approval and its invoice.

        The approval row is updated only while it is still Pending and its claim
        matches ``approval.claimed_by`` (compare-and-swap); the invoice row is
        written in the same transaction. Returns False, with nothing written, when
        another resolution got there first.
        """
        pass

    @abstractmethod
    def mark_approval_sent(self, approval_id: int, sent_at: datetime) -> None:
        pass

    @abstractmethod
    def expire_approvals(
        self, created_before: datetime, claim_stale_before: datetime | None = None
    ) -> List[ApprovalRequest]:
        """Move Pending requests created before the cutoff to Expired, skipping live claims"""
        pass
