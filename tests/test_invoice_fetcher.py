"""
Tests for the fetch job: project sync and discovery of new purchase invoices.
"""

from datetime import date, datetime, timedelta, UTC
from unittest.mock import Mock
import pytest
from invoice_robot.models import InvoiceStatus
from invoice_robot.services.accounting import AccountingInvoice, AccountingProject, InMemoryAccountingSystem
from invoice_robot.services.invoice_fetcher import InvoiceFetcher


def recent(days_ago: int = 1) -> date:
    return (datetime.now(UTC) - timedelta(days=days_ago)).date()


@pytest.fixture
def accounting():
    return InMemoryAccountingSystem(
        invoices=[
            AccountingInvoice(
                invoice_key=12345,
                invoice_number="INV-001",
                vendor_name="Rakennusliike Oy",
                amount=1000.0,
                invoice_date=recent(),
                due_date=recent() + timedelta(days=14),
            ),
            AccountingInvoice(
                invoice_key=54321,
                invoice_number="INV-002",
                vendor_name="Sähköasennus Oy",
                amount=2000.0,
                invoice_date=recent(3),
            ),
        ],
        projects=[
            AccountingProject(project_key=100, project_code="PRJ-001", name="Kerrostalo", address="Mannerheimintie 123"),
            AccountingProject(project_key=200, project_code="PRJ-002", name="Rivitalo"),
        ],
    )


@pytest.fixture
def fetcher(store, accounting):
    return InvoiceFetcher(store, accounting)


def test_new_invoices_are_discovered(fetcher, store):
    summary = fetcher.run(days=30)

    assert summary.invoices_seen == 2
    assert summary.invoices_added == 2

    invoices = store.list_invoices()
    assert [i.netvisor_invoice_key for i in invoices] == [12345, 54321]
    assert all(i.status is InvoiceStatus.DISCOVERED for i in invoices)
    assert invoices[0].vendor_name == "Rakennusliike Oy"
    assert invoices[0].due_date is not None
    assert invoices[0].ocr_text is None


def test_known_invoices_are_not_duplicated(fetcher, store):
    fetcher.run(days=30)

    summary = fetcher.run(days=30)

    assert summary.invoices_added == 0
    assert len(store.list_invoices()) == 2


def test_existing_invoice_state_is_preserved(fetcher, store, add_invoice):
    add_invoice(12345, "INV-001", status=InvoiceStatus.MATCHED_AUTO)

    summary = fetcher.run(days=30)

    assert summary.invoices_added == 1
    assert store.get_invoice_by_key(12345).status is InvoiceStatus.MATCHED_AUTO


def test_projects_are_synchronised(fetcher, store, accounting):
    summary = fetcher.run(days=30)

    assert summary.projects_synced == 2
    assert [p.project_code for p in store.list_projects()] == ["PRJ-001", "PRJ-002"]

    accounting.projects[0] = AccountingProject(
        project_key=100, project_code="PRJ-001", name="Kerrostalo B", is_active=False
    )
    fetcher.sync_projects()

    project = store.get_project_by_key(100)
    assert project.name == "Kerrostalo B"
    assert project.is_active is False


def test_days_window_is_passed_to_accounting(store):
    accounting = Mock()
    accounting.get_active_projects.return_value = []
    accounting.get_purchase_invoices.return_value = []

    InvoiceFetcher(store, accounting).run(days=7)

    accounting.get_purchase_invoices.assert_called_once_with(7)


def test_accounting_failure_is_reraised(store):
    accounting = Mock()
    accounting.get_active_projects.side_effect = RuntimeError("gateway down")

    with pytest.raises(RuntimeError):
        InvoiceFetcher(store, accounting).run(days=7)
