from datetime import datetime
from enum import IntEnum
import uuid
from pydantic import BaseModel, Field


class ApprovalStatus(IntEnum):
    PENDING = 0
    APPROVED = 10
    REJECTED = 20
    EXPIRED = 30

    @property
    def is_terminal(self) -> bool:
        return self is not ApprovalStatus.PENDING


class ApprovalRequest(BaseModel):
    """
    Human approval request for a low-confidence match.

    The suggestion fields are a snapshot taken when the request is created, so later
    changes to the invoice do not alter what the approver was shown. The token is the
    only external handle for resolving the request.
    """
    id: int | None = None
    invoice_id: int
    token: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: ApprovalStatus = ApprovalStatus.PENDING

    suggested_project_key: int | None = None
    suggested_project_id: int | None = None
    confidence_score: float | None = Field(default=None, ge=0.0, le=1.0)
    reasoning: str | None = None

    approved_project_key: int | None = None
    approved_project_id: int | None = None
    rejection_reason: str | None = None

    # Set while a resolver holds the request during the accounting update
    claimed_by: str | None = None
    claimed_at: datetime | None = None

    sent_at: datetime | None = None
    responded_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
