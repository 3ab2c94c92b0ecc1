"""
models.py — Shared data structures for alert detection and dispatch.

Defines:
    • ThreatType       — upstream alert_type tags (unknown → OTHER)
    • AlertRecord      — one active alert, parsed from upstream JSON
    • CountrySummary   — country-wide aggregation of the active set
    • LocationSummary  — aggregation for one watched location
    • Subscriber       — a chat watching one location
    • Transition       — ALERT (Clear → Alerted) / END (Alerted → Clear)
    • DeliveryStatus   — outcome of a single sink call
    • DeliveryOutcome  — per-recipient result of a dispatch
    • DeliveryAttempt  — single send attempt record
    • RecipientResult  — everything that happened for one recipient in a cycle
    • CycleReport      — final summary of one poll cycle
    • HistoryEntry     — one row of the transition history log

═══════════════════════════════════════════════════════════════════════════
SUBSCRIBER STATE MACHINE
═══════════════════════════════════════════════════════════════════════════

    Stored state    Resolved    Action
    ────────────    ────────    ──────────────────────────────────────
    Clear           False       no-op
    Clear           True        persist Alerted, then send ALERT
    Alerted         True        no-op (no repeated notifications)
    Alerted         False       persist Clear,   then send END

Subscribing (or re-subscribing to another location) always stores Clear.

═══════════════════════════════════════════════════════════════════════════
PER-RECIPIENT OUTCOMES
═══════════════════════════════════════════════════════════════════════════

    DELIVERED   rich notification (photo + caption) accepted by the sink
    FELL_BACK   rich delivery failed, plain-text fallback accepted
    FAILED      both rich and plain-text delivery failed
    SKIPPED     not evaluated this round (busy, unknown location,
                persistence failure)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from alert_relay.directory import LocationKind


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class ThreatType(str, Enum):
    """alerts.in.ua ``alert_type`` values."""
    AIR_RAID           = "air_raid"
    ARTILLERY_SHELLING = "artillery_shelling"
    URBAN_FIGHTS       = "urban_fights"
    NUCLEAR            = "nuclear"
    CHEMICAL           = "chemical"
    OTHER              = "other"

    @classmethod
    def from_upstream(cls, tag: Any) -> "ThreatType":
        """Missing tag means an air raid; anything unrecognised is OTHER."""
        if tag is None or tag == "":
            return cls.AIR_RAID
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return cls.OTHER


class Transition(str, Enum):
    """Direction of a state change; values match the history ``alert_type`` column."""
    ALERT = "ALERT"   # Clear → Alerted
    END   = "END"     # Alerted → Clear

    @property
    def new_state(self) -> bool:
        return self is Transition.ALERT


class DeliveryStatus(str, Enum):
    """Result of one call to a notification sink."""
    DELIVERED = "delivered"
    FAILED    = "failed"


class DeliveryOutcome(str, Enum):
    """Per-recipient result of a dispatch."""
    DELIVERED = "delivered"
    FELL_BACK = "fell_back"
    FAILED    = "failed"
    SKIPPED   = "skipped"


# ═══════════════════════════════════════════════════════════════════════════
# Upstream data
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AlertRecord:
    """
    One active alert.

    Immutable; a poll cycle works on a tuple of these that is replaced
    wholesale on the next fetch.
    """
    location_id: str
    location_type: LocationKind = LocationKind.DISTRICT
    parent_subdivision_id: Optional[str] = None
    threat_type: ThreatType = ThreatType.AIR_RAID
    location_title: Optional[str] = None
    note: Optional[str] = None
    started_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location_uid": self.location_id,
            "location_type": self.location_type.value,
            "location_oblast_uid": self.parent_subdivision_id,
            "alert_type": self.threat_type.value,
            "location_title": self.location_title,
            "notes": self.note,
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }


@dataclass
class CountrySummary:
    total_alerts: int = 0
    affected_subdivision_count: int = 0
    affected_subdivision_names: List[str] = field(default_factory=list)
    has_more: bool = False
    threat_type_counts: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAlerts": self.total_alerts,
            "oblastCount": self.affected_subdivision_count,
            "oblasts": list(self.affected_subdivision_names),
            "hasMore": self.has_more,
            "threats": dict(self.threat_type_counts),
        }


@dataclass
class LocationSummary:
    total: int = 0
    threat_type_counts: Dict[str, int] = field(default_factory=dict)
    district_names: List[str] = field(default_factory=list)
    has_more: bool = False
    notes: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None  # earliest start among relevant alerts

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "types": dict(self.threat_type_counts),
            "raions": list(self.district_names),
            "hasMore": self.has_more,
            "notes": list(self.notes),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Subscribers
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class Subscriber:
    """
    A chat watching one location.

    Attributes
    ----------
    recipient_id : str
        Telegram chat id; unique.
    watched_location_id : str
        Directory uid of the watched location.
    display_name : str | None
        Best-effort username.
    last_known_alert_state : bool
        Alerted (True) / Clear (False) as last persisted.
    """
    recipient_id: str
    watched_location_id: str
    display_name: Optional[str] = None
    location_name: Optional[str] = None
    location_type: Optional[str] = None
    last_known_alert_state: bool = False
    subscribed_at: datetime = field(default_factory=_now)
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chatId": self.recipient_id,
            "username": self.display_name,
            "locationUid": self.watched_location_id,
            "locationName": self.location_name,
            "locationType": self.location_type,
            "lastAlertState": self.last_known_alert_state,
            "subscribedAt": self.subscribed_at.isoformat(),
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }


# ═══════════════════════════════════════════════════════════════════════════
# Delivery tracking
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class DeliveryAttempt:
    """Record of a single sink call for one recipient."""
    recipient_id: str
    channel: str
    status: DeliveryStatus = DeliveryStatus.DELIVERED
    attempt_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    attempted_at: datetime = field(default_factory=_now)
    error_message: Optional[str] = None
    provider_response: Optional[Dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.status is DeliveryStatus.DELIVERED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempt_id": self.attempt_id,
            "channel": self.channel,
            "recipient_id": self.recipient_id,
            "status": self.status.value,
            "attempted_at": self.attempted_at.isoformat(),
            "error_message": self.error_message,
        }


@dataclass
class RecipientResult:
    recipient_id: str
    location_id: Optional[str]
    outcome: DeliveryOutcome
    transition: Optional[Transition] = None
    reason: Optional[str] = None
    attempts: List[DeliveryAttempt] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipient_id": self.recipient_id,
            "location_id": self.location_id,
            "outcome": self.outcome.value,
            "transition": self.transition.value if self.transition else None,
            "reason": self.reason,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass
class CycleReport:
    """Final summary of one dispatcher cycle."""
    cycle_id: str = field(default_factory=lambda: f"CYC-{uuid.uuid4().hex[:10].upper()}")
    kind: str = "subscribers"
    started_at: datetime = field(default_factory=_now)
    completed_at: Optional[datetime] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    evaluated: int = 0
    alert_count: int = 0
    results: List[RecipientResult] = field(default_factory=list)

    @property
    def transitions(self) -> List[RecipientResult]:
        return [r for r in self.results if r.transition is not None]

    def count(self, outcome: DeliveryOutcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def duration_ms(self) -> float:
        if self.completed_at is None:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "kind": self.kind,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_ms": round(self.duration_ms, 1),
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "evaluated": self.evaluated,
            "alert_count": self.alert_count,
            "transitions": len(self.transitions),
            "delivered": self.count(DeliveryOutcome.DELIVERED),
            "fell_back": self.count(DeliveryOutcome.FELL_BACK),
            "failed": self.count(DeliveryOutcome.FAILED),
            "skipped_recipients": self.count(DeliveryOutcome.SKIPPED),
            "results": [r.to_dict() for r in self.results],
        }


# ═══════════════════════════════════════════════════════════════════════════
# History
# ═══════════════════════════════════════════════════════════════════════════

@dataclass
class HistoryEntry:
    """One transition as written to the history log."""
    location_uid: str
    location_name: str
    alert_type: Transition
    recipient_id: Optional[str] = None
    delivery_status: Optional[str] = None
    threat_types: List[str] = field(default_factory=list)
    weather_temp: Optional[float] = None
    weather_desc: Optional[str] = None
    weather_icon: Optional[str] = None
    raions: List[str] = field(default_factory=list)
    country_count: int = 0
    created_at: datetime = field(default_factory=_now)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "location_uid": self.location_uid,
            "location_name": self.location_name,
            "alert_type": self.alert_type.value,
            "recipient_id": self.recipient_id,
            "delivery_status": self.delivery_status,
            "threat_types": list(self.threat_types),
            "weather_temp": self.weather_temp,
            "weather_desc": self.weather_desc,
            "weather_icon": self.weather_icon,
            "raions": list(self.raions),
            "country_count": self.country_count,
            "created_at": self.created_at.isoformat(),
        }
