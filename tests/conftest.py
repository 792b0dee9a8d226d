"""
Pytest configuration and shared fixtures.

Registers the integration marker / command-line option and provides a temporary
SQLite store, a small project catalog and an in-memory accounting system.
"""

import os
import tempfile
from datetime import date
import pytest
from invoice_robot.models import Invoice, InvoiceStatus, Project
from invoice_robot.services.accounting import InMemoryAccountingSystem
from invoice_robot.services.storage import SQLiteInvoiceStore


def pytest_addoption(parser):
    """Add custom command-line options"""
    parser.addoption(
        "--run-integration",
        action="store_true",
        default=False,
        help="Run integration tests against real Azure resources"
    )


def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test requiring real Azure resources"
    )


def pytest_collection_modifyitems(config, items):
    """Skip integration tests unless --run-integration is specified"""
    if config.getoption("--run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="need --run-integration option to run")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


@pytest.fixture
def db_path():
    """Create a temporary database file for testing"""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    yield path
    # Cleanup
    if os.path.exists(path):
        os.remove(path)


@pytest.fixture
def store(db_path):
    """Fresh SQLite store for each test"""
    return SQLiteInvoiceStore(db_path)


@pytest.fixture
def catalog():
    """Two active construction projects"""
    return [
        Project(
            netvisor_project_key=100,
            project_code="PRJ-001",
            name="Kerrostalo",
            address="Mannerheimintie 123, Helsinki",
        ),
        Project(
            netvisor_project_key=200,
            project_code="PRJ-002",
            name="Rivitalo",
            address="Kalevankatu 45, Tampere",
        ),
    ]


@pytest.fixture
def projects(store, catalog):
    """Catalog persisted in the store (with database ids)"""
    store.save_projects(catalog)
    return store.list_projects()


@pytest.fixture
def accounting():
    return InMemoryAccountingSystem()


@pytest.fixture
def add_invoice(store):
    """Factory storing a Discovered invoice"""
    def _add(invoice_key: int = 12345, invoice_number: str = "INV-001", **fields) -> Invoice:
        invoice = Invoice(
            netvisor_invoice_key=invoice_key,
            invoice_number=invoice_number,
            vendor_name=fields.pop("vendor_name", "Rakennusliike Oy"),
            amount=fields.pop("amount", 1000.0),
            invoice_date=fields.pop("invoice_date", date(2025, 11, 1)),
            status=fields.pop("status", InvoiceStatus.DISCOVERED),
            **fields,
        )
        return store.add_invoice(invoice)

    return _add
