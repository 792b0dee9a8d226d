"""
Invoice analysis pipeline.

One run takes every invoice in Discovered status through:

    document download -> OCR -> matcher chain -> confidence routing

and commits the results in a single batch. Soft failures (no document, OCR
failure, accounting update refused) leave the invoice status untouched so the
next scheduled run picks the invoice up again; the pipeline is therefore
re-entrant and idempotent per invoice.
"""

from datetime import datetime, UTC
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence
from loguru import logger
from pydantic import BaseModel, Field
from .accounting import AccountingSystem
from .approval_rules import InvoiceApprovalRules, create_approval_rules
from .events.event_publisher import EventPublisher, InvoiceAnalyzedEvent
from .form_recognizer import DocumentTextExtractor
from .matching import ChainMatch, MatcherChain
from .storage import AnalysisBatch, InvoiceStoreBase
from ..models import ApprovalRequest, ApprovalStatus, Invoice, InvoiceStatus, Project

Notifier = Callable[[Invoice, ApprovalRequest, Optional[Project]], dict]


class AnalysisOutcome(str, Enum):
    SKIPPED_NO_DOCUMENT = "skipped_no_document"
    SKIPPED_EXTRACTION_FAILED = "skipped_extraction_failed"
    ANALYSIS_FAILED = "analysis_failed"
    MATCHED_AUTO = "matched_auto"
    ACCOUNTING_UPDATE_FAILED = "accounting_update_failed"
    PENDING_APPROVAL = "pending_approval"
    ERROR = "error"


# Outcomes whose invoice changes are written back
_PERSISTED_OUTCOMES = {
    AnalysisOutcome.ANALYSIS_FAILED,
    AnalysisOutcome.MATCHED_AUTO,
    AnalysisOutcome.ACCOUNTING_UPDATE_FAILED,
    AnalysisOutcome.PENDING_APPROVAL,
}


class AnalysisRunSummary(BaseModel):
    """What happened to each invoice in one analyzer run"""
    outcomes: Dict[int, AnalysisOutcome] = Field(default_factory=dict)
    conflicts: List[int] = Field(default_factory=list)
    approval_tokens: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    def count(self, outcome: AnalysisOutcome) -> int:
        return sum(1 for o in self.outcomes.values() if o == outcome)

    def counts(self) -> Dict[str, int]:
        return {outcome.value: self.count(outcome) for outcome in AnalysisOutcome}


class InvoiceAnalyzer:
    """
    Drives Discovered invoices to AnalysisFailed, MatchedAuto or PendingApproval.

    Collaborators are injected; see ``invoice_robot.api.deps`` for the production wiring.
    """

    def __init__(
        self,
        store: InvoiceStoreBase,
        accounting: AccountingSystem,
        extractor: DocumentTextExtractor,
        matchers: MatcherChain,
        rules: InvoiceApprovalRules | None = None,
        notifier: Notifier | None = None,
        event_publisher: EventPublisher | None = None,
    ):
        self.store = store
        self.accounting = accounting
        self.extractor = extractor
        self.matchers = matchers
        self.rules = rules or create_approval_rules()
        self.notifier = notifier
        self.event_publisher = event_publisher

    def run(self) -> AnalysisRunSummary:
        """
        Analyze every Discovered invoice and commit the batch.

        Per-invoice failures never abort the batch. Anything escaping the batch
        boundary (store unavailable, commit failure) is logged and re-raised to
        the scheduling host.
        """
        logger.info("InvoiceAnalyzer starting", time=datetime.now(UTC).isoformat())
        summary = AnalysisRunSummary()

        try:
            invoices = self.store.list_invoices(status=InvoiceStatus.DISCOVERED)
            if not invoices:
                logger.info("No new invoices to analyze")
                return summary

            projects = self.store.list_projects(active_only=True)
            logger.info("Analyzing invoices", count=len(invoices), active_projects=len(projects))

            batch = AnalysisBatch()
            for invoice in invoices:
                outcome, approval = self._analyze_safely(invoice, projects)
                summary.outcomes[invoice.id] = outcome
                if outcome in _PERSISTED_OUTCOMES:
                    batch.add(invoice, approval)

            result = self.store.save_analysis_batch(batch)
            summary.conflicts = result.conflicted_invoice_ids
            summary.approval_tokens = [a.token for a in result.created_approvals]

        except Exception as e:
            logger.exception("InvoiceAnalyzer run failed: {error}", error=str(e))
            raise

        saved = [inv for inv in batch.invoices if inv.id in result.saved_invoice_ids]
        self._notify_approvers(saved, result.created_approvals, projects)
        self._publish_events(saved, result.created_approvals)

        logger.info("InvoiceAnalyzer finished", conflicts=len(summary.conflicts), **summary.counts())
        return summary

    def _analyze_safely(self, invoice: Invoice, projects: Sequence[Project]):
        try:
            return self.analyze_invoice(invoice, projects)
        except Exception as e:
            logger.exception(
                "Unexpected error analyzing invoice: {error}",
                error=str(e),
                invoice_number=invoice.invoice_number,
            )
            return AnalysisOutcome.ERROR, None

    def analyze_invoice(
        self, invoice: Invoice, projects: Sequence[Project]
    ) -> tuple[AnalysisOutcome, Optional[ApprovalRequest]]:
        """
        Analyze one invoice, mutating it in place.

        Returns:
            (outcome, new approval request or None). Nothing is persisted here.
        """
        log = logger.bind(invoice_number=invoice.invoice_number, invoice_key=invoice.netvisor_invoice_key)
        log.info("Analyzing invoice")

        # 1. Document
        document = None
        try:
            document = self.accounting.download_invoice_document(invoice.netvisor_invoice_key)
        except Exception as e:
            log.error("Document download failed: {error}", error=str(e))

        if not document:
            log.warning("Invoice has no document, skipping")
            return AnalysisOutcome.SKIPPED_NO_DOCUMENT, None

        # 2. OCR
        try:
            text = self.extractor.extract_text(document)
        except Exception as e:
            log.error("OCR failed: {error}", error=str(e))
            return AnalysisOutcome.SKIPPED_EXTRACTION_FAILED, None

        now = datetime.now(UTC)
        invoice.ocr_text = text
        invoice.ocr_processed_at = now

        # 3-4. Heuristic first, AI as fallback
        match: ChainMatch | None = self.matchers.match(
            text,
            invoice.vendor_name,
            invoice.amount,
            projects,
            invoice_number=invoice.invoice_number,
            invoice_date=invoice.invoice_date,
        )

        if match is None:
            log.warning("No project found for invoice")
            invoice.status = InvoiceStatus.ANALYSIS_FAILED
            return AnalysisOutcome.ANALYSIS_FAILED, None

        # 5. Record the suggestion whatever the route
        result = match.result
        project = next((p for p in projects if p.netvisor_project_key == result.project_key), None)
        invoice.record_suggestion(
            project_key=result.project_key,
            project_id=project.id if project else None,
            confidence=result.confidence,
            reasoning=f"[{match.method}] {result.reasoning}",
            method=match.method,
            analyzed_at=now,
        )

        # 6. Confidence routing
        decision = self.rules.evaluate(result.confidence, method=match.method)

        if decision.auto_match:
            try:
                updated = self.accounting.update_invoice_project(invoice.netvisor_invoice_key, result.project_key)
            except Exception as e:
                log.error("Accounting system update raised: {error}", error=str(e))
                updated = False

            if not updated:
                log.error("Accounting system update failed, invoice left for retry", project_key=result.project_key)
                return AnalysisOutcome.ACCOUNTING_UPDATE_FAILED, None

            invoice.status = InvoiceStatus.MATCHED_AUTO
            invoice.final_project_key = result.project_key
            invoice.final_project_id = project.id if project else None
            invoice.updated_to_accounting_system_at = datetime.now(UTC)
            log.info("Invoice matched automatically", project_key=result.project_key, confidence=result.confidence)
            return AnalysisOutcome.MATCHED_AUTO, None

        invoice.status = InvoiceStatus.PENDING_APPROVAL
        approval = ApprovalRequest(
            invoice_id=invoice.id,
            status=ApprovalStatus.PENDING,
            suggested_project_key=result.project_key,
            suggested_project_id=project.id if project else None,
            confidence_score=result.confidence,
            reasoning=result.reasoning,
            created_at=now,
        )
        log.info("Approval request created", project_key=result.project_key, confidence=result.confidence)
        return AnalysisOutcome.PENDING_APPROVAL, approval

    def _notify_approvers(
        self,
        invoices: Sequence[Invoice],
        approvals: Sequence[ApprovalRequest],
        projects: Sequence[Project],
    ) -> None:
        if self.notifier is None:
            return

        by_id = {inv.id: inv for inv in invoices}
        by_key = {p.netvisor_project_key: p for p in projects}

        for approval in approvals:
            invoice = by_id.get(approval.invoice_id)
            if invoice is None:
                continue
            try:
                result = self.notifier(invoice, approval, by_key.get(approval.suggested_project_key))
                if result.get("status") == "sent":
                    sent_at = datetime.now(UTC)
                    self.store.mark_approval_sent(approval.id, sent_at)
                    approval.sent_at = sent_at
            except Exception as e:
                logger.error(
                    "Approval notification failed: {error}",
                    error=str(e),
                    invoice_number=invoice.invoice_number,
                )

    def _publish_events(self, invoices: Sequence[Invoice], approvals: Sequence[ApprovalRequest]) -> None:
        if self.event_publisher is None:
            return

        tokens = {a.invoice_id: a.token for a in approvals}
        for invoice in invoices:
            event = InvoiceAnalyzedEvent(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                vendor=invoice.vendor_name,
                amount=invoice.amount,
                status=invoice.status.name,
                method=invoice.match_method,
                project_key=invoice.suggested_project_key,
                confidence=invoice.ai_confidence_score,
                reasoning=invoice.ai_reasoning,
                approval_token=tokens.get(invoice.id),
            )
            try:
                self.event_publisher.publish(event)
            except Exception as e:
                logger.warning("Failed to publish event: {error}", error=str(e), invoice_id=invoice.id)
