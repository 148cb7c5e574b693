"""Auto-alert generation from market snapshots.

Only downside daily moves raise alerts:
- change <= -10%          -> critical
- -10% < change <= -5%    -> warning
- anything else           -> no alert

The deadline is a soft horizon after the snapshot's retrieval time, so the
output depends on the snapshot alone and regenerating it is idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from ..models import AlertSeverity, AutoAlert, MarketItem, MarketSnapshot

logger = logging.getLogger(__name__)

CRITICAL_THRESHOLD_PCT = -10.0
WARNING_THRESHOLD_PCT = -5.0
DEADLINE_HOURS = 12.0

DISCLAIMER = (
    "Based on end-of-day / free-tier market data, which may lag live prices. "
    "Review exposure if needed."
)

AUTO_ALERT_TAGS = ["price-change"]


@dataclass
class AlertThresholds:
    """Named thresholds for downside move classification."""
    critical_pct: float = CRITICAL_THRESHOLD_PCT
    warning_pct: float = WARNING_THRESHOLD_PCT
    deadline_hours: float = DEADLINE_HOURS

    def __post_init__(self):
        if self.critical_pct > self.warning_pct:
            raise ValueError(
                f"critical threshold {self.critical_pct} must not be above warning threshold {self.warning_pct}"
            )


def classify_move(pct: Optional[float], thresholds: Optional[AlertThresholds] = None) -> Optional[AlertSeverity]:
    """Severity for a daily percentage change, or None when no alert is due."""
    if pct is None:
        return None
    thresholds = thresholds or AlertThresholds()
    if pct <= thresholds.critical_pct:
        return AlertSeverity.CRITICAL
    if pct <= thresholds.warning_pct:
        return AlertSeverity.WARNING
    return None


class AutoAlertGenerator:
    """Turns a MarketSnapshot into synthetic AutoAlerts."""

    TITLES = {
        AlertSeverity.CRITICAL: "Sharp drawdown",
        AlertSeverity.WARNING: "Drawdown",
    }

    def __init__(self, thresholds: Optional[AlertThresholds] = None):
        self.thresholds = thresholds or AlertThresholds()

    def generate(self, snapshot: MarketSnapshot) -> List[AutoAlert]:
        """Generate alerts for every resolved item past a threshold."""
        alerts = []
        for item in snapshot.items:
            alert = self._alert_for(item, snapshot.retrieved_at)
            if alert is not None:
                alerts.append(alert)

        if alerts:
            logger.info(f"Generated {len(alerts)} auto-alert(s) from {len(snapshot.items)} item(s)")
        return alerts

    def _alert_for(self, item: MarketItem, reference_time: datetime) -> Optional[AutoAlert]:
        if not item.is_resolved:
            return None
        severity = classify_move(item.day_change_pct, self.thresholds)
        if severity is None:
            return None

        pct = round(item.day_change_pct, 1)
        title = f"{item.token}: {self.TITLES[severity]} {pct:.1f}%"
        description = f"{item.token} moved {pct:.1f}% over the last day. {DISCLAIMER}"

        return AutoAlert(
            id=f"auto_{item.token.lower()}_{reference_time.strftime('%Y%m%d')}_{severity.value}",
            token=item.token,
            severity=severity,
            title=title,
            description=description,
            deadline=reference_time + timedelta(hours=self.thresholds.deadline_hours),
            tags=list(AUTO_ALERT_TAGS),
            generated=True,
        )
