"""
storage — Persistent state.

Modules:
    tables       — ORM rows (subscribers, alerts_history)
    subscribers  — SubscriberStore with a write-invalidated read cache
    history      — HistoryStore (transition log, paginated queries, stats)
"""
