"""
base.py — Sink interface and media selection.

A media reference is either a local file path (uploaded) or anything
the transport accepts by reference (URL, Telegram file_id).
"""

from __future__ import annotations

import random
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from alert_relay.alerts.models import DeliveryAttempt, Transition
from alert_relay.core.config import settings

MEDIA_VARIANTS = 3


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers one notification to one recipient."""

    name: str

    async def send(
        self,
        recipient_id: str,
        caption: str,
        media: Optional[str] = None,
    ) -> DeliveryAttempt:
        ...

    async def send_text(self, recipient_id: str, text: str) -> DeliveryAttempt:
        ...

    async def close(self) -> None:
        ...


def pick_media(
    transition: Transition,
    media_dir: Optional[str] = None,
    *,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Path of a random ``red_alert_N.png`` / ``green_alert_N.png``.

    Returns None when the chosen file does not exist, so the caller
    sends text only.
    """
    prefix = "red_alert" if transition is Transition.ALERT else "green_alert"
    n = (rng or random).randint(1, MEDIA_VARIANTS)
    path = Path(media_dir or settings.MEDIA_DIR) / f"{prefix}_{n}.png"
    return str(path) if path.is_file() else None
