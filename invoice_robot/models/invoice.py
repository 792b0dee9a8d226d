from datetime import date, datetime
from enum import IntEnum
from pydantic import BaseModel, Field, model_validator


class InvoiceStatus(IntEnum):
    """Ordered invoice lifecycle. Values are persisted, do not renumber."""
    DISCOVERED = 0
    ANALYZING = 10
    MATCHED_AUTO = 20
    PENDING_APPROVAL = 30
    APPROVED = 40
    UPDATED_TO_ACCOUNTING_SYSTEM = 50
    IN_APPROVAL_CIRCULATION = 60
    COMPLETED = 70
    REJECTED = 80
    ANALYSIS_FAILED = 90
    ERROR = 100


class Invoice(BaseModel):
    id: int | None = None
    netvisor_invoice_key: int
    invoice_number: str = ""
    vendor_name: str = ""
    amount: float = 0.0
    invoice_date: date | None = None
    due_date: date | None = None

    # OCR result (document bytes are processed in memory, never stored)
    ocr_text: str | None = None
    ocr_processed_at: datetime | None = None

    # Matcher suggestion
    suggested_project_key: int | None = None
    suggested_project_id: int | None = None
    ai_confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    ai_reasoning: str | None = None
    ai_analyzed_at: datetime | None = None
    match_method: str | None = None

    # Final assignment pushed to the accounting system
    final_project_key: int | None = None
    final_project_id: int | None = None
    updated_to_accounting_system_at: datetime | None = None

    status: InvoiceStatus = InvoiceStatus.DISCOVERED
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def record_suggestion(
        self,
        project_key: int,
        project_id: int | None,
        confidence: float,
        reasoning: str,
        method: str,
        analyzed_at: datetime,
    ) -> None:
        """Set all suggestion fields together (confidence never travels alone)."""
        if not 0.0 <= confidence <= 1.0:
            raise ValueError(f"confidence out of range: {confidence}")
        self.suggested_project_key = project_key
        self.suggested_project_id = project_id
        self.ai_confidence_score = confidence
        self.ai_reasoning = reasoning
        self.match_method = method
        self.ai_analyzed_at = analyzed_at

    @model_validator(mode="after")
    def _suggestion_is_complete(self):
        if self.ai_confidence_score is not None and (
            self.suggested_project_key is None or self.ai_reasoning is None
        ):
            raise ValueError(
                "ai_confidence_score requires suggested_project_key and ai_reasoning"
            )
        return self
