"""User-facing alerts."""
import logging
from collections import deque
from datetime import datetime
from typing import Callable, Deque, List, Optional
from uuid import uuid4

from pydantic import BaseModel

from pharmfind.services.ordering.models import utc_now

logger = logging.getLogger(__name__)

DRIVERS = "drivers"  # broadcast recipient for every driver
PHARMACISTS = "pharmacists"  # broadcast recipient for every pharmacist


class Alert(BaseModel):
    """Alert shown to a user or a role."""

    alert_id: str
    recipient: str
    kind: str
    message: str
    created_at: datetime


class AlertCenter:
    """Keeps the most recent alerts in memory."""

    def __init__(self, max_alerts: int = 200, clock: Callable[[], datetime] = utc_now):
        self._alerts: Deque[Alert] = deque(maxlen=max_alerts)
        self.clock = clock

    def emit(self, recipient: str, kind: str, message: str) -> Alert:
        """Record an alert for a recipient."""
        alert = Alert(
            alert_id=uuid4().hex,
            recipient=recipient,
            kind=kind,
            message=message,
            created_at=self.clock(),
        )
        self._alerts.append(alert)
        logger.info(f"[ALERT] -> {recipient} ({kind}): {message}")
        return alert

    def list_for(
        self, recipient: str, broadcast: Optional[str] = None, since: Optional[datetime] = None
    ) -> List[Alert]:
        """Alerts addressed to recipient (and to the broadcast group, if given), newest first."""
        wanted = {recipient} if broadcast is None else {recipient, broadcast}
        alerts = [
            alert
            for alert in self._alerts
            if alert.recipient in wanted and (since is None or alert.created_at > since)
        ]
        return list(reversed(alerts))

    def clear(self) -> None:
        self._alerts.clear()
