"""Fire-and-forget notifications for staff side channels."""

from __future__ import annotations

import logging
from typing import Any, Dict

logger = logging.getLogger(__name__)


class NotificationService:
    """Send staff-facing notifications.

    This default implementation only writes to the log; deployments that page
    staff (e-mail, chat webhooks) subclass it and override `deliver`.
    """

    async def notify(self, event: Dict[str, Any]) -> bool:
        """Deliver `event`; never raises. Returns False when delivery failed."""
        try:
            await self.deliver(event)
        except Exception as exc:  # pylint: disable=broad-exception-caught
            logger.error("Notification %s could not be delivered: %s", event.get("type"), exc)
            return False
        return True

    async def deliver(self, event: Dict[str, Any]) -> None:
        logger.info("Notification: %s %s", event.get("type"), event.get("data"))
