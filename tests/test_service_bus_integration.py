"""
Integration tests for Azure Service Bus event publishing.

Run these tests with a real Service Bus namespace:
    pytest tests/test_service_bus_integration.py --run-integration

Requires environment variable:
    SERVICE_BUS_CONNECTION_STRING=Endpoint=sb://...

Create a queue named 'invoice-events' in your Service Bus namespace.
"""

import json
import os
import pytest
from azure.servicebus import ServiceBusClient
from invoice_robot.services.events.event_publisher import EventPublisher, InvoiceAnalyzedEvent

QUEUE_NAME = "invoice-events"


@pytest.fixture
def conn_str():
    value = os.getenv("SERVICE_BUS_CONNECTION_STRING")
    if not value:
        pytest.skip("SERVICE_BUS_CONNECTION_STRING not set")
    return value


@pytest.mark.integration
def test_publish_and_receive_invoice_analyzed_event(conn_str):
    """
    Integration test: publish an event to the real queue and read it back.

    Setup:
        az servicebus queue create \
          --name invoice-events \
          --namespace-name <your-namespace> \
          --resource-group <your-rg>
    """
    event = InvoiceAnalyzedEvent(
        invoice_id=0,
        invoice_number="INT-001",
        vendor="Integration Test Oy",
        amount=999.99,
        status="PENDING_APPROVAL",
        method="AI",
        project_key=200,
        confidence=0.7,
        reasoning="[AI] Integration test event",
        approval_token="integration-test-token",
    )

    with ServiceBusClient.from_connection_string(conn_str) as client:
        with client.get_queue_sender(queue_name=QUEUE_NAME) as sender:
            EventPublisher(service_bus_sender=sender, entity_name=QUEUE_NAME).publish(event)

        with client.get_queue_receiver(queue_name=QUEUE_NAME, max_wait_time=10) as receiver:
            received = None
            for msg in receiver:
                data = json.loads(str(msg))
                receiver.complete_message(msg)
                if data.get("approval_token") == "integration-test-token":
                    received = data
                    break

    assert received is not None, "Published event was not received from the queue"
    assert received["event_type"] == "InvoiceAnalyzed"
    assert received["method"] == "AI"
    assert received["confidence"] == 0.7
    assert received["invoice_number"] == "INT-001"
