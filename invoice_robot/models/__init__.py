from .invoice import Invoice, InvoiceStatus
from .project import Project
from .approval import ApprovalRequest, ApprovalStatus

__all__ = ["Invoice", "InvoiceStatus", "Project", "ApprovalRequest", "ApprovalStatus"]
