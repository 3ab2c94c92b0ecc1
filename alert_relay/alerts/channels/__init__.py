"""
channels — Notification sinks.

Each sink exposes:
    send(recipient_id, caption, media=None) → DeliveryAttempt
    send_text(recipient_id, text)           → DeliveryAttempt

Sinks report failure through the returned attempt, never by raising.
Fallback to plain text is decided by the dispatcher.
"""

from alert_relay.alerts.channels.base import NotificationSink, pick_media
from alert_relay.alerts.channels.simulated import SimulatedSink
from alert_relay.alerts.channels.telegram import TelegramSink

__all__ = ["NotificationSink", "SimulatedSink", "TelegramSink", "pick_media"]
