"""
alerts — Alert detection and notification dispatch.

Sub-modules:
    channels/    — Notification sinks (Telegram Bot API, simulated)
    models       — Data structures shared across the system
    resolver     — Containment-aware "is this location alerted" queries
    detector     — Transition table and the broadcast AggregateWatch
    dispatcher   — Per-subscriber and broadcast cycles
    formatting   — Notification captions
    scheduler    — Periodic poll tasks
"""
