"""Outbound notifications for admin edits."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from driver_payroll.models import LogEntry

logger = logging.getLogger(__name__)


class EditNotifier:
    """Posts edited log entries to a mail webhook.

    Delivery failures are logged and never propagate to the caller, so an
    unreachable webhook cannot fail an edit that is already committed.
    """

    def __init__(
        self,
        webhook_url: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.transport = transport

    async def entry_edited(self, entry: LogEntry) -> bool:
        """Send a driver_log_edited notification. Returns True if delivered."""
        payload = {"type": "driver_log_edited", "log": entry_payload(entry)}
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(self.webhook_url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError:
            logger.exception(
                "Edit notification for entry %s failed", entry.log_entry_id
            )
            return False
        return True


def entry_payload(entry: LogEntry) -> dict[str, Any]:
    """JSON-safe view of an entry."""
    return {
        "id": entry.log_entry_id,
        "log_date": entry.log_date.isoformat(),
        "driver_id": entry.driver_id,
        "driver_name": entry.driver.name,
        "truck_unit": entry.truck.unit,
        "miles": str(entry.miles),
        "value_hours": str(entry.value_hours),
        "detention_minutes": entry.detention_minutes,
        "mileage_rate": str(entry.mileage_rate),
        "per_value_rate": str(entry.per_value_rate),
        "detention_rate": str(entry.detention_rate),
        "gross_pay": str(entry.gross_pay),
        "notes": entry.notes,
        "status": entry.status,
    }
