from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from ..deps import get_analyzer, get_fetcher, get_store
from ...models import InvoiceStatus
from ...services.invoice_analyzer import InvoiceAnalyzer
from ...services.invoice_fetcher import InvoiceFetcher
from ...services.storage import InvoiceStoreBase

router = APIRouter(prefix="/invoices", tags=["invoices"])


def _summary(invoice) -> dict:
    """Invoice without the OCR text, for list views"""
    data = invoice.model_dump(mode="json", exclude={"ocr_text"})
    data["status"] = invoice.status.name
    return data


@router.get("")
def list_invoices(status: int | None = None, store: InvoiceStoreBase = Depends(get_store)):
    """
    List stored invoices, optionally filtered by status (numeric value, e.g. ``30``).

    Shows for each invoice how it was matched: method tag, confidence and reasoning.
    """
    try:
        invoice_status = InvoiceStatus(status) if status is not None else None
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown invoice status {status}")

    invoices = store.list_invoices(status=invoice_status)
    return {"total": len(invoices), "invoices": [_summary(inv) for inv in invoices]}


@router.get("/{invoice_id}")
def get_invoice(invoice_id: int, store: InvoiceStoreBase = Depends(get_store)):
    invoice = store.get_invoice(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")

    data = invoice.model_dump(mode="json")
    data["status"] = invoice.status.name
    return data


@router.post("/fetch")
def fetch_invoices(days: int | None = None, fetcher: InvoiceFetcher = Depends(get_fetcher)):
    """
    Trigger the fetch job: synchronise projects and store new purchase invoices.

    Called periodically by ``invoice_scheduler.py``.
    """
    try:
        summary = fetcher.run(days=days)
    except Exception as e:
        logger.error("Fetch job failed: {error}", error=str(e))
        raise HTTPException(status_code=502, detail=f"Fetch failed: {e}")
    return summary.model_dump()


@router.post("/analyze")
def analyze_invoices(analyzer: InvoiceAnalyzer = Depends(get_analyzer)):
    """
    Trigger the analyzer job over every Discovered invoice.

    Returns per-outcome counts, batch conflicts and the tokens of new approval requests.
    """
    try:
        summary = analyzer.run()
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Analysis failed: {e}")

    return {
        "total": summary.total,
        "counts": summary.counts(),
        "conflicts": summary.conflicts,
        "approval_tokens": summary.approval_tokens,
    }
