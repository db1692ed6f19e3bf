"""
Notification collaborator interface.

The order/payment core only decides *when* a customer must be told about a
status change; senders own the wording and the transport.
"""

from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class NotificationSender(Protocol):
    """Delivers a status-change notice for one order through one channel."""

    channel: str

    def send_status_change(self, order, new_status: str, estimated_delivery: Optional[str] = None) -> None:
        ...
