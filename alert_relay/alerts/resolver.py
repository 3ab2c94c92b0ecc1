"""
resolver.py — Decides whether a location is alerted from the raw alert set.

Containment
===========
An alert on location B affects the watched location A when any of:

    1. B == A                                     direct match
    2. B == subdivision of A                      whole oblast alerted
    3. alert.parent_subdivision_id == A           alert declares A as its oblast
    4. A is a subdivision and B is a directory
       district/city whose parent is A            raion inside the watched oblast

The checks are OR'd. Everything here is synchronous and pure; the
resolver never fetches.
"""

from __future__ import annotations

from collections import Counter
from typing import List, Sequence

from alert_relay.alerts.models import AlertRecord, CountrySummary, LocationSummary
from alert_relay.directory import LocationDirectory, LocationKind

SUBDIVISION_NAME_CAP = 8
DISTRICT_NAME_CAP = 5
NOTE_CAP = 2

_DISTRICT_SUFFIX = " район"


class AlertResolver:
    """Containment-aware queries over one alert snapshot."""

    def __init__(self, directory: LocationDirectory):
        self.directory = directory

    def affects(self, alert: AlertRecord, location_id: str) -> bool:
        """True if ``alert`` makes ``location_id`` alerted."""
        if alert.location_id == location_id:
            return True

        node = self.directory.get(location_id)
        if node is not None and not node.is_subdivision:
            if node.parent_id and alert.location_id == node.parent_id:
                return True

        if alert.parent_subdivision_id == location_id:
            return True

        if node is not None and node.is_subdivision:
            alert_node = self.directory.get(alert.location_id)
            if alert_node is not None and alert_node.parent_id == location_id:
                return True

        return False

    def is_active(self, alerts: Sequence[AlertRecord], location_id: str) -> bool:
        if not location_id:
            return False
        return any(self.affects(a, location_id) for a in alerts)

    def details_for(self, alerts: Sequence[AlertRecord], location_id: str) -> List[AlertRecord]:
        """Alerts on the location itself or declaring it as their subdivision."""
        return [
            a for a in alerts
            if a.location_id == location_id or a.parent_subdivision_id == location_id
        ]

    def relevant_to(self, alerts: Sequence[AlertRecord], location_id: str) -> List[AlertRecord]:
        """
        Alerts on the location, declaring it as parent, or (for a
        subdivision) on any directory child of it.
        """
        node = self.directory.get(location_id)
        out = []
        for a in alerts:
            if a.location_id == location_id or a.parent_subdivision_id == location_id:
                out.append(a)
                continue
            if node is not None and node.is_subdivision:
                alert_node = self.directory.get(a.location_id)
                if alert_node is not None and alert_node.parent_id == location_id:
                    out.append(a)
        return out

    def threat_types_for(self, alerts: Sequence[AlertRecord], location_id: str) -> List[str]:
        """Distinct threat type values affecting the location, first-seen order."""
        seen: List[str] = []
        for a in alerts:
            if self.affects(a, location_id) and a.threat_type.value not in seen:
                seen.append(a.threat_type.value)
        return seen

    def summarize(self, alerts: Sequence[AlertRecord]) -> CountrySummary:
        """Country-wide totals: oblast-level alerts by title, threats by type."""
        subdivisions: List[str] = []
        threats: Counter = Counter()

        for a in alerts:
            if a.location_type is LocationKind.SUBDIVISION:
                name = a.location_title or self._name_of(a.location_id)
                if name not in subdivisions:
                    subdivisions.append(name)
            threats[a.threat_type.value] += 1

        return CountrySummary(
            total_alerts=len(alerts),
            affected_subdivision_count=len(subdivisions),
            affected_subdivision_names=subdivisions[:SUBDIVISION_NAME_CAP],
            has_more=len(subdivisions) > SUBDIVISION_NAME_CAP,
            threat_type_counts=dict(threats),
        )

    def summarize_location(self, alerts: Sequence[AlertRecord], location_id: str) -> LocationSummary:
        relevant = self.relevant_to(alerts, location_id)
        threats: Counter = Counter()
        districts: List[str] = []
        notes: List[str] = []
        starts = [a.started_at for a in relevant if a.started_at is not None]

        for a in relevant:
            threats[a.threat_type.value] += 1
            note = (a.note or "").strip()
            if note and note not in notes:
                notes.append(note)
            if a.location_type is LocationKind.DISTRICT:
                name = a.location_title or self._name_of(a.location_id)
                districts.append(name.replace(_DISTRICT_SUFFIX, ""))

        return LocationSummary(
            total=len(relevant),
            threat_type_counts=dict(threats),
            district_names=districts[:DISTRICT_NAME_CAP],
            has_more=len(districts) > DISTRICT_NAME_CAP,
            notes=notes[:NOTE_CAP],
            started_at=min(starts) if starts else None,
        )

    def _name_of(self, location_id: str) -> str:
        node = self.directory.get(location_id)
        return node.display_name if node else location_id
