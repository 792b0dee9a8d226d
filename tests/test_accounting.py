"""
Tests for the accounting gateway REST client (HTTP mocked with respx).
"""

import json
import httpx
import pytest
import respx
from invoice_robot.services.accounting import HttpAccountingSystem
from invoice_robot.services.errors import AccountingSystemError

BASE_URL = "https://accounting.example.com/api"


@pytest.fixture
def client():
    return HttpAccountingSystem(base_url=BASE_URL, api_key="secret")


@respx.mock
def test_get_purchase_invoices(client):
    route = respx.get(f"{BASE_URL}/purchase-invoices").mock(
        return_value=httpx.Response(200, json=[
            {
                "invoiceKey": 12345,
                "invoiceNumber": "INV-001",
                "vendorName": "Rakennusliike Oy",
                "amount": 1000.0,
                "invoiceDate": "2025-11-01",
                "dueDate": "2025-11-15",
            }
        ])
    )

    invoices = client.get_purchase_invoices(days=30)

    assert route.called
    request = route.calls.last.request
    assert "since" in request.url.params
    assert request.headers["X-Api-Key"] == "secret"
    assert invoices[0].invoice_key == 12345
    assert invoices[0].vendor_name == "Rakennusliike Oy"
    assert invoices[0].project_key is None


@respx.mock
def test_get_active_projects(client):
    route = respx.get(f"{BASE_URL}/projects").mock(
        return_value=httpx.Response(200, json=[
            {"projectKey": 100, "projectCode": "PRJ-001", "name": "Kerrostalo", "address": "Mannerheimintie 123"}
        ])
    )

    projects = client.get_active_projects()

    assert route.calls.last.request.url.params["active"] == "true"
    assert projects[0].project_key == 100
    assert projects[0].is_active is True


@respx.mock
def test_list_error_raises(client):
    respx.get(f"{BASE_URL}/projects").mock(return_value=httpx.Response(500))

    with pytest.raises(AccountingSystemError):
        client.get_active_projects()


@respx.mock
def test_download_document(client):
    respx.get(f"{BASE_URL}/purchase-invoices/12345/document").mock(
        return_value=httpx.Response(200, content=b"%PDF-1.7")
    )

    assert client.download_invoice_document(12345) == b"%PDF-1.7"


@respx.mock
def test_missing_document_returns_none(client):
    respx.get(f"{BASE_URL}/purchase-invoices/12345/document").mock(return_value=httpx.Response(404))

    assert client.download_invoice_document(12345) is None


@respx.mock
def test_update_invoice_project(client):
    route = respx.put(f"{BASE_URL}/purchase-invoices/12345/project").mock(return_value=httpx.Response(204))

    assert client.update_invoice_project(12345, 100) is True
    assert json.loads(route.calls.last.request.content) == {"projectKey": 100}


@respx.mock
def test_refused_update_returns_false(client):
    respx.put(f"{BASE_URL}/purchase-invoices/12345/project").mock(return_value=httpx.Response(409))

    assert client.update_invoice_project(12345, 100) is False


@respx.mock
def test_transport_error_raises(client):
    respx.put(f"{BASE_URL}/purchase-invoices/12345/project").mock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(AccountingSystemError):
        client.update_invoice_project(12345, 100)
