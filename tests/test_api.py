from datetime import date, datetime, UTC
import pytest
from fastapi.testclient import TestClient
from invoice_robot.api import deps
from invoice_robot.api.main import app
from invoice_robot.models import ApprovalRequest, ApprovalStatus, InvoiceStatus
from invoice_robot.services.accounting import AccountingInvoice
from invoice_robot.services.approval_rules import ApprovalRulesConfig, InvoiceApprovalRules
from invoice_robot.services.approval_workflow import ApprovalWorkflow
from invoice_robot.services.form_recognizer import DocumentTextExtractor
from invoice_robot.services.invoice_analyzer import InvoiceAnalyzer
from invoice_robot.services.invoice_fetcher import InvoiceFetcher
from invoice_robot.services.matching import HeuristicProjectMatcher, MatcherChain
from invoice_robot.services.storage import AnalysisBatch


@pytest.fixture
def client(store, accounting, projects):
    analyzer = InvoiceAnalyzer(
        store,
        accounting,
        DocumentTextExtractor(client=None),
        MatcherChain([HeuristicProjectMatcher()]),
        rules=InvoiceApprovalRules(ApprovalRulesConfig(auto_match_threshold=0.9)),
    )
    app.dependency_overrides[deps.get_store] = lambda: store
    app.dependency_overrides[deps.get_analyzer] = lambda: analyzer
    app.dependency_overrides[deps.get_fetcher] = lambda: InvoiceFetcher(store, accounting)
    app.dependency_overrides[deps.get_workflow] = lambda: ApprovalWorkflow(store, accounting)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def approval(store, add_invoice):
    """Pending approval request for invoice 54321 suggesting project 200"""
    invoice = add_invoice(54321, "INV-002", vendor_name="Sähköasennus <Oy>")
    invoice.record_suggestion(200, None, 0.7, "[AI] Medium confidence match", "AI", datetime.now(UTC))
    invoice.status = InvoiceStatus.PENDING_APPROVAL
    request = ApprovalRequest(
        invoice_id=invoice.id,
        suggested_project_key=200,
        confidence_score=0.7,
        reasoning="Medium confidence match",
    )
    store.save_analysis_batch(AnalysisBatch(invoices=[invoice], approval_requests=[request]))
    return request


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_fetch_and_analyze(client, store, accounting):
    accounting.invoices.append(AccountingInvoice(
        invoice_key=12345,
        invoice_number="INV-001",
        vendor_name="Rakennusliike Oy",
        amount=1000.0,
        invoice_date=date.today(),
    ))
    accounting.documents[12345] = b"Invoice for PRJ-001"

    r = client.post("/invoices/fetch", params={"days": 30})
    assert r.status_code == 200
    assert r.json()["invoices_added"] == 1

    r = client.post("/invoices/analyze")
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["counts"]["matched_auto"] == 1
    assert accounting.updates == [(12345, 100)]


def test_list_and_get_invoices(client, add_invoice):
    invoice = add_invoice(12345, "INV-001")
    add_invoice(99999, "INV-009", status=InvoiceStatus.ANALYSIS_FAILED)

    r = client.get("/invoices")
    assert r.status_code == 200
    assert r.json()["total"] == 2

    r = client.get("/invoices", params={"status": int(InvoiceStatus.ANALYSIS_FAILED)})
    assert [i["invoice_number"] for i in r.json()["invoices"]] == ["INV-009"]
    assert r.json()["invoices"][0]["status"] == "ANALYSIS_FAILED"

    r = client.get(f"/invoices/{invoice.id}")
    assert r.status_code == 200
    assert r.json()["invoice_number"] == "INV-001"
    assert r.json()["status"] == "DISCOVERED"


def test_unknown_invoice_returns_404(client):
    assert client.get("/invoices/999").status_code == 404


def test_approval_form_renders(client, approval):
    r = client.get("/approval", params={"token": approval.token})

    assert r.status_code == 200
    assert "Invoice project approval" in r.text
    assert '<option value="200" selected>PRJ-002 - Rivitalo</option>' in r.text
    assert "Medium confidence match" in r.text
    assert "Sähköasennus &lt;Oy&gt;" in r.text


def test_approval_form_unknown_token(client):
    assert client.get("/approval", params={"token": "nope"}).status_code == 404


def test_form_approve_then_replay(client, store, accounting, approval):
    r = client.post("/approval", data={"token": approval.token, "action": "approve", "projectKey": "100"})

    assert r.status_code == 200
    assert "Invoice Approved" in r.text
    assert accounting.updates == [(54321, 100)]
    assert store.get_approval_by_token(approval.token).status is ApprovalStatus.APPROVED

    r = client.post("/approval", data={"token": approval.token, "action": "reject"})
    assert r.status_code == 200
    assert "Already Processed" in r.text

    r = client.get("/approval", params={"token": approval.token})
    assert "Already Processed" in r.text


def test_form_reject(client, store, accounting, approval):
    r = client.post(
        "/approval",
        data={"token": approval.token, "action": "reject", "projectKey": "200", "rejectionReason": "Wrong site"},
    )

    assert r.status_code == 200
    assert "Invoice Rejected" in r.text
    assert accounting.updates == []
    assert store.get_approval_by_token(approval.token).rejection_reason == "Wrong site"


def test_form_invalid_project_returns_400(client, approval):
    r = client.post("/approval", data={"token": approval.token, "action": "approve", "projectKey": "999"})

    assert r.status_code == 400


def test_form_accounting_failure_returns_502(client, accounting, approval):
    accounting.update_succeeds = False

    r = client.post("/approval", data={"token": approval.token, "action": "approve"})

    assert r.status_code == 502


def test_resolve_json(client, store, approval):
    r = client.post("/approvals/resolve", json={"token": approval.token, "decision": "approve"})

    assert r.status_code == 200
    body = r.json()
    assert body["outcome"] == "approved"
    assert body["invoice_status"] == "APPROVED"
    assert body["final_project_key"] == 200

    r = client.post("/approvals/resolve", json={"token": approval.token, "decision": "approve"})
    assert r.status_code == 200
    assert r.json()["outcome"] == "already-processed"


def test_resolve_json_errors(client, approval):
    assert client.post("/approvals/resolve", json={"token": "nope", "decision": "approve"}).status_code == 404
    r = client.post("/approvals/resolve", json={"token": approval.token, "decision": "approve", "project_key": 999})
    assert r.status_code == 400
    r = client.post("/approvals/resolve", json={"token": approval.token, "decision": "maybe"})
    assert r.status_code == 422


def test_list_and_expire_approvals(client, approval):
    r = client.get("/approvals", params={"status": int(ApprovalStatus.PENDING)})
    assert r.json()["total"] == 1
    assert r.json()["approvals"][0]["status"] == "PENDING"

    r = client.post("/approvals/expire", params={"older_than_days": 0})
    assert r.status_code == 200
    assert r.json()["tokens"] == [approval.token]

    r = client.get("/approvals", params={"status": int(ApprovalStatus.PENDING)})
    assert r.json()["total"] == 0
