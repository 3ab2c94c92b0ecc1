"""
simulated.py — Logging sink for development and tests.

Used when no TELEGRAM_BOT_TOKEN is configured. Every call is logged and
kept in ``sent`` so tests can assert on what would have been delivered.
Recipients listed in ``fail_rich`` / ``fail_text`` get FAILED attempts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

from alert_relay.alerts.models import DeliveryAttempt, DeliveryStatus

logger = logging.getLogger(__name__)


@dataclass
class SentMessage:
    recipient_id: str
    text: str
    media: Optional[str]
    rich: bool


class SimulatedSink:
    name = "simulated"

    def __init__(
        self,
        fail_rich: Iterable[str] = (),
        fail_text: Iterable[str] = (),
    ):
        self.fail_rich: Set[str] = {str(r) for r in fail_rich}
        self.fail_text: Set[str] = {str(r) for r in fail_text}
        self.sent: List[SentMessage] = []
        self.attempts: List[DeliveryAttempt] = []

    def fail_everything_for(self, recipient_id: str) -> None:
        self.fail_rich.add(str(recipient_id))
        self.fail_text.add(str(recipient_id))

    def delivered_to(self, recipient_id: str) -> List[SentMessage]:
        return [m for m in self.sent if m.recipient_id == str(recipient_id)]

    async def send(
        self,
        recipient_id: str,
        caption: str,
        media: Optional[str] = None,
    ) -> DeliveryAttempt:
        return self._deliver(recipient_id, caption, media, rich=True)

    async def send_text(self, recipient_id: str, text: str) -> DeliveryAttempt:
        return self._deliver(recipient_id, text, None, rich=False)

    async def close(self) -> None:
        return None

    def _deliver(self, recipient_id: str, text: str, media: Optional[str], *, rich: bool) -> DeliveryAttempt:
        recipient_id = str(recipient_id)
        channel = f"{self.name}.{'rich' if rich else 'text'}"
        failing = self.fail_rich if rich else self.fail_text

        if recipient_id in failing:
            logger.warning("[SIMULATED] %s rejected for %s", channel, recipient_id,
                           extra={"recipient_id": recipient_id})
            attempt = DeliveryAttempt(
                recipient_id=recipient_id,
                channel=channel,
                status=DeliveryStatus.FAILED,
                error_message="simulated failure",
            )
        else:
            first_line = text.splitlines()[0] if text else ""
            logger.info("[SIMULATED] %s → %s: %s", channel, recipient_id, first_line,
                        extra={"recipient_id": recipient_id})
            self.sent.append(SentMessage(recipient_id, text, media, rich))
            attempt = DeliveryAttempt(
                recipient_id=recipient_id,
                channel=channel,
                status=DeliveryStatus.DELIVERED,
                provider_response={"mode": "simulated"},
            )

        self.attempts.append(attempt)
        return attempt
