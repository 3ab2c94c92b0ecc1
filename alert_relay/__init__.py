"""
alert_relay — Air-raid alert notification relay.

Polls alerts.in.ua, detects per-subscriber alert transitions and
pushes notifications to Telegram chats.
"""

__version__ = "1.0.0"
