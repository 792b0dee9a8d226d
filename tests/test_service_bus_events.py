"""
Tests for Service Bus event publishing.

Verifies that invoice analysis and approval events are published to Azure Service Bus
for audit displays, reporting and downstream integrations.
"""

import json
import pytest
from unittest.mock import Mock
from invoice_robot.services.events.event_publisher import (
    ApprovalResolvedEvent,
    EventPublisher,
    InvoiceAnalyzedEvent,
)


@pytest.fixture
def mock_service_bus_sender():
    """Create a mock Service Bus sender matching Azure SDK interface"""
    return Mock()


@pytest.fixture
def event_publisher(mock_service_bus_sender):
    """Create EventPublisher with mocked Service Bus sender"""
    return EventPublisher(service_bus_sender=mock_service_bus_sender)


def analyzed_event(**overrides):
    fields = dict(
        invoice_id=1,
        invoice_number="INV-001",
        vendor="Rakennusliike Oy",
        amount=1000.0,
        status="MATCHED_AUTO",
        method="Heuristic",
        project_key=100,
        confidence=1.0,
        reasoning="[Heuristic] Project code 'PRJ-001' found in text",
    )
    fields.update(overrides)
    return InvoiceAnalyzedEvent(**fields)


def test_invoice_analyzed_event_structure():
    """Test that InvoiceAnalyzedEvent carries the audit fields"""
    event = analyzed_event()

    assert event.invoice_id == 1
    assert event.method == "Heuristic"
    assert event.confidence == 1.0
    assert event.approval_token is None
    assert event.event_type == "InvoiceAnalyzed"
    assert event.timestamp is not None


def test_publish_invoice_analyzed_event(event_publisher, mock_service_bus_sender):
    event_publisher.publish(analyzed_event(invoice_number="INV-456"))

    assert mock_service_bus_sender.send_messages.called
    message = mock_service_bus_sender.send_messages.call_args[0][0]
    assert "INV-456" in str(message)
    assert "InvoiceAnalyzed" in str(message)
    assert message.subject == "InvoiceAnalyzed"
    assert message.content_type == "application/json"


def test_publish_approval_resolved_event(event_publisher, mock_service_bus_sender):
    event = ApprovalResolvedEvent(
        invoice_id=2,
        approval_id=7,
        decision="approved",
        suggested_project_key=200,
        final_project_key=100,
    )

    event_publisher.publish(event)

    message = mock_service_bus_sender.send_messages.call_args[0][0]
    assert message.subject == "ApprovalResolved"
    assert "approved" in str(message)


def test_publish_multiple_events(event_publisher, mock_service_bus_sender):
    event_publisher.publish(analyzed_event(invoice_id=1))
    event_publisher.publish(analyzed_event(invoice_id=2, status="ANALYSIS_FAILED", method=None))

    assert mock_service_bus_sender.send_messages.call_count == 2


def test_publish_with_null_service_bus_sender():
    """Test that publisher gracefully handles None sender (disabled mode)"""
    publisher = EventPublisher(service_bus_sender=None)

    assert publisher.enabled is False
    # Should not raise an error
    publisher.publish(analyzed_event())


def test_event_serializes_to_json():
    """Test that event can be serialized to JSON for Service Bus"""
    event = analyzed_event(status="PENDING_APPROVAL", method="AI", confidence=0.7, approval_token="abc")

    data = json.loads(event.to_json())

    assert data["invoice_number"] == "INV-001"
    assert data["status"] == "PENDING_APPROVAL"
    assert data["method"] == "AI"
    assert data["confidence"] == 0.7
    assert data["approval_token"] == "abc"
    assert data["event_type"] == "InvoiceAnalyzed"
    # Timestamp should be ISO format
    assert "T" in data["timestamp"]


def test_publisher_can_use_entity_name():
    publisher = EventPublisher(service_bus_sender=Mock(), entity_name="invoice-events")

    assert publisher.entity_name == "invoice-events"
    assert publisher.enabled is True
