"""Synthetic alert model derived from market movement."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List


class AlertSeverity(str, Enum):
    """Alert severity levels, ordered from least to most urgent."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class AutoAlert:
    """Alert generated from a market snapshot.

    Never persisted here; storage belongs to whoever consumes the alerts.
    """
    id: str
    token: str
    severity: AlertSeverity
    title: str
    description: str
    deadline: datetime
    tags: List[str] = field(default_factory=list)
    generated: bool = True
