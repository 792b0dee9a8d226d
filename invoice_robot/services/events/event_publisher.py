"""
Azure Service Bus event publishing for invoice matching events.

Enables downstream systems to react to invoice processing:
- Audit displays can show how each invoice was matched (method, confidence, reasoning)
- Reporting can track auto-match and approval rates
- Notification systems can alert project managers
"""

import json
from datetime import datetime, UTC
from typing import Optional
from dataclasses import dataclass, asdict
from ...core.config import settings


@dataclass
class InvoiceAnalyzedEvent:
    """
    Event published when the analyzer has decided an invoice.

    ``method`` is the matcher tag ("Heuristic" / "AI"), None when no matcher
    found a project.
    """

    invoice_id: int
    invoice_number: str
    vendor: str
    amount: float
    status: str
    method: Optional[str] = None
    project_key: Optional[int] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
    approval_token: Optional[str] = None
    event_type: str = "InvoiceAnalyzed"
    timestamp: Optional[str] = None

    def __post_init__(self):
        """Set timestamp if not provided"""
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class ApprovalResolvedEvent:
    """Event published when a human approved or rejected a suggestion"""

    invoice_id: int
    approval_id: int
    decision: str
    suggested_project_key: Optional[int] = None
    final_project_key: Optional[int] = None
    rejection_reason: Optional[str] = None
    event_type: str = "ApprovalResolved"
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(UTC).isoformat()

    def to_dict(self) -> dict:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventPublisher:
    """
    Publishes events to Azure Service Bus (Queue or Topic).

    Usage:
        # Production with Service Bus Queue
        from azure.servicebus import ServiceBusClient
        client = ServiceBusClient.from_connection_string(conn_str)
        sender = client.get_queue_sender(queue_name="invoice-events")
        publisher = EventPublisher(service_bus_sender=sender)

        # Disabled mode (no Service Bus configured)
        publisher = EventPublisher(service_bus_sender=None)
    """

    def __init__(
        self,
        service_bus_sender: Optional[object] = None,
        entity_name: str = "invoice-events"
    ):
        """
        Initialize event publisher.

        Args:
            service_bus_sender: Azure Service Bus sender (ServiceBusSender) or None to disable
            entity_name: Service Bus queue or topic name (default: invoice-events)
        """
        self.service_bus_sender = service_bus_sender
        self.entity_name = entity_name

    @property
    def enabled(self) -> bool:
        return self.service_bus_sender is not None

    def publish(self, event) -> None:
        """
        Publish an event to Service Bus.

        Note:
            If service_bus_sender is None, this is a no-op (disabled mode).
        """
        if self.service_bus_sender is None:
            return

        from azure.servicebus import ServiceBusMessage

        message = ServiceBusMessage(
            event.to_json(),
            content_type="application/json",
            subject=event.event_type,
        )
        self.service_bus_sender.send_messages(message)


_default_publisher: EventPublisher | None = None


def get_event_publisher() -> EventPublisher:
    """
    Get the default event publisher instance.

    Connects to the queue named by SERVICE_BUS_QUEUE when
    SERVICE_BUS_CONNECTION_STRING is set, otherwise returns a disabled publisher.
    """
    global _default_publisher

    if _default_publisher is None:
        if settings.service_bus_connection_string:
            from azure.servicebus import ServiceBusClient

            client = ServiceBusClient.from_connection_string(settings.service_bus_connection_string)
            sender = client.get_queue_sender(queue_name=settings.service_bus_queue)
            _default_publisher = EventPublisher(service_bus_sender=sender, entity_name=settings.service_bus_queue)
        else:
            _default_publisher = EventPublisher(service_bus_sender=None)

    return _default_publisher
