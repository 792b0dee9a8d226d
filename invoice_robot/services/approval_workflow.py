"""
Human approval of low-confidence project suggestions.

An approval request is addressed only by its token. Resolution is at most once
per token: a resolver first claims the Pending request, makes the accounting
update while holding the claim, and then flips the request out of Pending with a
conditional update. A replayed or concurrent resolution cannot claim the request
and reports ``already-processed`` instead of changing anything.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from enum import Enum
from typing import List, Optional
from loguru import logger
from .accounting import AccountingSystem
from .events.event_publisher import ApprovalResolvedEvent, EventPublisher
from .storage import InvoiceStoreBase
from ..core.config import settings
from ..models import ApprovalRequest, ApprovalStatus, Invoice, InvoiceStatus, Project


class ApprovalDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ApprovalOutcome(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    NOT_FOUND = "not-found"
    ALREADY_PROCESSED = "already-processed"
    ACCOUNTING_UPDATE_FAILED = "accounting-update-failed"


@dataclass
class ApprovalResolution:
    outcome: ApprovalOutcome
    approval: Optional[ApprovalRequest] = None
    invoice: Optional[Invoice] = None
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome in (ApprovalOutcome.APPROVED, ApprovalOutcome.REJECTED)


@dataclass
class PendingApproval:
    """Everything the approval form needs to render"""
    approval: ApprovalRequest
    invoice: Invoice
    projects: List[Project] = field(default_factory=list)


class ApprovalWorkflow:
    def __init__(
        self,
        store: InvoiceStoreBase,
        accounting: AccountingSystem,
        event_publisher: EventPublisher | None = None,
    ):
        self.store = store
        self.accounting = accounting
        self.event_publisher = event_publisher

    def get_pending(self, token: str) -> Optional[PendingApproval]:
        """
        Look up a request by token for display.

        Returns None for an unknown token. Terminal requests are returned as well;
        callers check ``approval.status`` to show the already-processed page.
        """
        approval = self.store.get_approval_by_token(token)
        if approval is None:
            return None

        invoice = self.store.get_invoice(approval.invoice_id)
        if invoice is None:
            log.warning("Invoice of approval request not found", invoice_id=approval.invoice_id)
            return ApprovalResolution(ApprovalOutcome.NOT_FOUND, approval=approval, message="Invoice not found")

        project = None
        if decision is ApprovalDecision.APPROVE:
            chosen_key = project_key if project_key is not None else approval.suggested_project_key
            project = self.store.get_project_by_key(chosen_key) if chosen_key is not None else None
            if project is None or not project.is_active:
                raise ValueError(f"Project {chosen_key} is not an active project")

        # Held until the request is completed or released; a concurrent resolver
        # cannot claim it while the accounting update is in flight
        claimed = self.store.claim_approval(token, stale_before=self._claim_stale_before())
        if claimed is None:
            log.info("Approval request is being or has been resolved elsewhere")
            return ApprovalResolution(ApprovalOutcome.ALREADY_PROCESSED, message="Request already processed")

        try:
            if project is not None:
                resolution = self._approve(claimed, invoice, project, log)
            else:
                resolution = self._reject(claimed, invoice, rejection_reason, log)
        except Exception:
            self.store.release_approval(claimed)
            raise

        if resolution.outcome is ApprovalOutcome.ACCOUNTING_UPDATE_FAILED:
            self.store.release_approval(claimed)
        return resolution

    def _claim_stale_before(self) -> datetime:
        return datetime.now(UTC) - timedelta(seconds=settings.approval_claim_timeout_seconds)

    def _approve(self, approval: ApprovalRequest, invoice: Invoice, project: Project, log) -> ApprovalResolution:
        chosen_key = project.netvisor_project_key

        try:
            updated = self.accounting.update_invoice_project(invoice.netvisor_invoice_key, chosen_key)
        except Exception as e:
            log.error("Accounting system update raised: {error}", error=str(e))
            updated = False

        if not updated:
            log.error("Accounting system update failed", project_key=chosen_key)
            return ApprovalResolution(
                ApprovalOutcome.ACCOUNTING_UPDATE_FAILED,
                approval=approval,
                invoice=invoice,
                message="Failed to update the accounting system",
            )

        now = datetime.now(UTC)
        approval.status = ApprovalStatus.APPROVED
        approval.approved_project_key = chosen_key
        approval.approved_project_id = project.id
        approval.responded_at = now

        invoice.status = InvoiceStatus.APPROVED
        invoice.final_project_key = chosen_key
        invoice.final_project_id = project.id
        invoice.updated_to_accounting_system_at = now

        if not self.store.complete_approval(approval, invoice):
            log.info("Approval request resolved concurrently")
            return ApprovalResolution(ApprovalOutcome.ALREADY_PROCESSED, message="Request already processed")

        log.info(
            "Invoice approved",
            invoice_number=invoice.invoice_number,
            project_key=chosen_key,
            suggested_project_key=approval.suggested_project_key,
        )
        self._publish(approval, invoice)
        return ApprovalResolution(ApprovalOutcome.APPROVED, approval=approval, invoice=invoice)

    def _reject(self, approval: ApprovalRequest, invoice: Invoice, reason: str | None, log) -> ApprovalResolution:
        approval.status = ApprovalStatus.REJECTED
        approval.rejection_reason = reason
        approval.responded_at = datetime.now(UTC)
        invoice.status = InvoiceStatus.REJECTED

        if not self.store.complete_approval(approval, invoice):
            log.info("Approval request resolved concurrently")
            return ApprovalResolution(ApprovalOutcome.ALREADY_PROCESSED, message="Request already processed")

        log.info("Invoice rejected", invoice_number=invoice.invoice_number, reason=reason)
        self._publish(approval, invoice)
        return ApprovalResolution(ApprovalOutcome.REJECTED, approval=approval, invoice=invoice)

    def expire_stale(self, older_than_days: int | None = None) -> List[ApprovalRequest]:
        """Expire Pending requests created more than ``older_than_days`` ago"""
        days = older_than_days if older_than_days is not None else settings.approval_expiry_days
        cutoff = datetime.now(UTC) - timedelta(days=days)

        expired = self.store.expire_approvals(
            created_before=cutoff, claim_stale_before=self._claim_stale_before()
        )
        if expired:
            logger.info("Expired stale approval requests", count=len(expired), older_than_days=days)
        return expired

    def _publish(self, approval: ApprovalRequest, invoice: Invoice) -> None:
        if self.event_publisher is None:
            return

        event = ApprovalResolvedEvent(
            invoice_id=invoice.id,
            approval_id=approval.id,
            decision=approval.status.name.lower(),
            suggested_project_key=approval.suggested_project_key,
            final_project_key=invoice.final_project_key,
            rejection_reason=approval.rejection_reason,
        )
        try:
            self.event_publisher.publish(event)
        except Exception as e:
            logger.warning("Failed to publish event: {error}", error=str(e), approval_id=approval.id)
