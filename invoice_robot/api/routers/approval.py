from html import escape
from fastapi import APIRouter, Depends, Form, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel
from ..deps import get_store, get_workflow
from ...models import ApprovalRequest, ApprovalStatus, Invoice, Project
from ...services.approval_workflow import (
    ApprovalDecision,
    ApprovalOutcome,
    ApprovalResolution,
    ApprovalWorkflow,
)
from ...services.storage import InvoiceStoreBase

router = APIRouter(tags=["approvals"])


class ResolveRequest(BaseModel):
    """Request body for /approvals/resolve"""
    token: str
    decision: ApprovalDecision
    project_key: int | None = None
    rejection_reason: str | None = None


class ResolveResponse(BaseModel):
    outcome: ApprovalOutcome
    message: str = ""
    invoice_id: int | None = None
    invoice_status: str | None = None
    final_project_key: int | None = None


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""
        <html>
            <body style="font-family: Arial; text-align: center; padding: 50px;">
                <h2>{title}</h2>
                {body}
            </body>
        </html>
        """,
        status_code=status_code,
    )


def _invoice_facts(invoice: Invoice) -> str:
    return f"""
        <p><strong>Vendor:</strong> {escape(invoice.vendor_name or "N/A")}</p>
        <p><strong>Invoice #:</strong> {escape(invoice.invoice_number or "N/A")}</p>
        <p><strong>Total:</strong> {invoice.amount:,.2f} EUR</p>
    """


def _already_processed_page(approval: ApprovalRequest) -> HTMLResponse:
    if approval.status is ApprovalStatus.PENDING:
        return _page(
            "⚠️ Already Processed",
            "<p>This approval request is being processed by another approver. Please reload in a moment.</p>",
        )

    decided_at = approval.responded_at or approval.updated_at
    return _page(
        "⚠️ Already Processed",
        f"""
        <p>This approval request was already {approval.status.name.lower()}.</p>
        <p>Decision made at: {decided_at.isoformat() if decided_at else "N/A"}</p>
        """,
    )


def _approval_form(approval: ApprovalRequest, invoice: Invoice, projects: list[Project]) -> HTMLResponse:
    options = "\n".join(
        f'<option value="{p.netvisor_project_key}"'
        f'{" selected" if p.netvisor_project_key == approval.suggested_project_key else ""}>'
        f"{escape(p.label)}</option>"
        for p in projects
    )
    confidence = f"{approval.confidence_score:.0%}" if approval.confidence_score is not None else "N/A"

    return _page(
        "Invoice project approval",
        f"""
        {_invoice_facts(invoice)}
        <p><strong>Confidence:</strong> {confidence}</p>
        <p><strong>Reasoning:</strong> {escape(approval.reasoning or "")}</p>
        <hr>
        <form method="post" action="/approval">
            <input type="hidden" name="token" value="{escape(approval.token)}">
            <p>
                <label for="projectKey">Project</label>
                <select id="projectKey" name="projectKey">{options}</select>
            </p>
            <p>
                <label for="rejectionReason">Rejection reason</label>
                <input id="rejectionReason" name="rejectionReason" type="text">
            </p>
            <button type="submit" name="action" value="approve">Approve</button>
            <button type="submit" name="action" value="reject">Reject</button>
        </form>
        """,
    )


@router.get("/approval", response_class=HTMLResponse)
def approval_form(token: str, workflow: ApprovalWorkflow = Depends(get_workflow)):
    """Approval form linked from the Teams card"""
    pending = workflow.get_pending(token)
    if pending is None:
        raise HTTPException(status_code=404, detail="Approval request not found")

    if pending.approval.status is not ApprovalStatus.PENDING:
        return _already_processed_page(pending.approval)

    return _approval_form(pending.approval, pending.invoice, pending.projects)


@router.post("/approval", response_class=HTMLResponse)
def submit_approval_form(
    token: str = Form(...),
    action: ApprovalDecision = Form(...),
    projectKey: str | None = Form(None),
    rejectionReason: str | None = Form(None),
    workflow: ApprovalWorkflow = Depends(get_workflow),
):
    """Handle the approve / reject buttons of the approval form"""
    try:
        project_key = int(projectKey) if projectKey else None
        resolution = workflow.resolve(
            token,
            action,
            project_key=project_key,
            rejection_reason=rejectionReason or None,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if resolution.outcome is ApprovalOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="Approval request not found")

    if resolution.outcome is ApprovalOutcome.ALREADY_PROCESSED:
        approval = resolution.approval or workflow.store.get_approval_by_token(token)
        return _already_processed_page(approval)

    if resolution.outcome is ApprovalOutcome.ACCOUNTING_UPDATE_FAILED:
        return _page(
            "❌ Update Failed",
            f"""
            {_invoice_facts(resolution.invoice)}
            <hr>
            <p style="color: red;">The accounting system could not be updated. Please try again later.</p>
            """,
            status_code=502,
        )

    if resolution.outcome is ApprovalOutcome.APPROVED:
        return _page(
            "✅ Invoice Approved",
            f"""
            {_invoice_facts(resolution.invoice)}
            <p><strong>Project:</strong> {resolution.invoice.final_project_key}</p>
            <hr>
            <p style="color: green;">Thank you! The project assignment has been saved.</p>
            """,
        )

    return _page(
        "❌ Invoice Rejected",
        f"""
        {_invoice_facts(resolution.invoice)}
        <hr>
        <p style="color: red;">The project suggestion has been rejected.</p>
        """,
    )


def _resolve_response(resolution: ApprovalResolution) -> ResolveResponse:
    invoice = resolution.invoice
    return ResolveResponse(
        outcome=resolution.outcome,
        message=resolution.message,
        invoice_id=invoice.id if invoice else None,
        invoice_status=invoice.status.name if invoice else None,
        final_project_key=invoice.final_project_key if invoice else None,
    )


@router.post("/approvals/resolve", response_model=ResolveResponse)
def resolve_approval(req: ResolveRequest, workflow: ApprovalWorkflow = Depends(get_workflow)):
    """
    Resolve an approval request by token (JSON entry point for automation clients).

    Example request:
    {
        "token": "5f0c...",
        "decision": "approve",
        "project_key": 200
    }

    A replayed token answers ``already-processed`` with status 200.
    """
    try:
        resolution = workflow.resolve(
            req.token,
            req.decision,
            project_key=req.project_key,
            rejection_reason=req.rejection_reason,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if resolution.outcome is ApprovalOutcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail=resolution.message)
    if resolution.outcome is ApprovalOutcome.ACCOUNTING_UPDATE_FAILED:
        raise HTTPException(status_code=502, detail=resolution.message)

    return _resolve_response(resolution)


@router.get("/approvals")
def list_approvals(status: int | None = None, store: InvoiceStoreBase = Depends(get_store)):
    """List approval requests, newest first (optionally by numeric status, e.g. ``0`` for Pending)"""
    try:
        approval_status = ApprovalStatus(status) if status is not None else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown approval status {status}")

    approvals = store.list_approvals(status=approval_status)
    items = []
    for approval in approvals:
        data = approval.model_dump(mode="json")
        data["status"] = approval.status.name
        items.append(data)
    return {"total": len(items), "approvals": items}


@router.post("/approvals/expire")
def expire_approvals(older_than_days: int | None = None, workflow: ApprovalWorkflow = Depends(get_workflow)):
    """Expire Pending approval requests older than the cutoff (APPROVAL_EXPIRY_DAYS by default)"""
    expired = workflow.expire_stale(older_than_days)
    return {"expired": len(expired), "tokens": [a.token for a in expired]}
