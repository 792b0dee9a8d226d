import copy
import httpx
from ..core.config import settings
from ..models import ApprovalRequest, Invoice, Project

# Approval notification: post an Adaptive Card to a Teams Incoming Webhook.
# The card links to the token-addressed approval form served by the API.

ADAPTIVE_CARD_TEMPLATE = {
    "type": "message",
    "attachments": [{
        "contentType": "application/vnd.microsoft.card.adaptive",
        "content": {
            "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
            "type": "AdaptiveCard",
            "version": "1.4",
            "body": [
                {"type": "TextBlock", "weight": "Bolder", "size": "Medium", "text": "Invoice project approval"},
                {"type": "FactSet", "facts": []}
            ],
            "actions": [
                {"type": "Action.OpenUrl", "title": "Review", "url": "https://example.com/approval"}
            ]
        }
    }]
}


def approval_url(token: str) -> str:
    return f"{settings.api_base_url}/approval?token={token}"


def build_approval_card(invoice: Invoice, approval: ApprovalRequest, project: Project | None = None) -> dict:
    card = copy.deepcopy(ADAPTIVE_CARD_TEMPLATE)
    content = card["attachments"][0]["content"]
    facts = content["body"][1]["facts"]

    fields = {
        "invoice_number": invoice.invoice_number,
        "vendor": invoice.vendor_name,
        "amount": f"{invoice.amount:,.2f} EUR",
        "invoice_date": invoice.invoice_date.isoformat() if invoice.invoice_date else None,
        "suggested_project": project.label if project else approval.suggested_project_key,
        "confidence": f"{approval.confidence_score:.0%}" if approval.confidence_score is not None else None,
        "reasoning": approval.reasoning,
    }
    for k, v in fields.items():
        if v is not None:
            facts.append({"title": k, "value": str(v)})

    content["actions"] = [
        {"type": "Action.OpenUrl", "title": "Review", "url": approval_url(approval.token)}
    ]
    return card


def post_approval_card(invoice: Invoice, approval: ApprovalRequest, project: Project | None = None) -> dict:
    if not settings.teams_webhook_url:
        return {"status": "skipped", "reason": "TEAMS_WEBHOOK_URL not set"}

    card = build_approval_card(invoice, approval, project)

    with httpx.Client(timeout=10) as client:
        r = client.post(settings.teams_webhook_url, json=card)
        r.raise_for_status()
        return {"status": "sent", "http_status": r.status_code}
