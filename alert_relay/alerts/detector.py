"""
detector.py — Binary alert-state transitions.

    previous   current   →  transition
    False      False        None
    False      True         ALERT
    True       True         None
    True       False        END

AggregateWatch applies the same table to one operator-chosen location
that has no subscriber record; its first observation after start-up is
a baseline and never produces a transition.
"""

from __future__ import annotations

import logging
from typing import Optional

from alert_relay.alerts.models import Transition

logger = logging.getLogger(__name__)


def detect_transition(previous: bool, current: bool) -> Optional[Transition]:
    if previous == current:
        return None
    return Transition.ALERT if current else Transition.END


class AggregateWatch:
    """Last-known state of a single watched location, held in memory."""

    def __init__(self, location_id: str, location_name: str = ""):
        self.location_id = location_id
        self.location_name = location_name or location_id
        self.last_known: Optional[bool] = None

    @property
    def initialized(self) -> bool:
        return self.last_known is not None

    def observe(self, active: bool) -> Optional[Transition]:
        """Record ``active``; returns the transition it caused, if any."""
        if self.last_known is None:
            self.last_known = active
            logger.info(
                "Initial state: %s = %s", self.location_name, "ALERT" if active else "SAFE",
                extra={"location_uid": self.location_id},
            )
            return None

        transition = detect_transition(self.last_known, active)
        self.last_known = active
        return transition

    def reset(self) -> None:
        self.last_known = None
