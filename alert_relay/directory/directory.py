"""
directory.py — Read-only lookup over the static location table.

Defines:
    • LocationKind      — subdivision (oblast) / district (raion) / city
    • LocationNode      — one entry of the table
    • RegionalCentre    — coordinates used for weather lookups
    • LocationDirectory — id / name lookups and parent-child navigation

The table is loaded once at construction and validated:

    every district/city node's parent_id resolves to a subdivision,
    subdivision nodes have no parent, ids are unique.

A broken table raises ValueError at startup rather than producing
silently wrong containment answers later.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from alert_relay.core.errors import NotFoundError
from alert_relay.directory.data import (
    DEFAULT_CENTRE_UID,
    LOCATION_ROWS,
    REGIONAL_CENTRES,
)


class LocationKind(str, Enum):
    """Administrative level of a location."""
    SUBDIVISION = "subdivision"   # oblast, plus Kyiv city
    DISTRICT    = "district"      # raion / hromada
    CITY        = "city"

    @classmethod
    def from_upstream(cls, tag: Optional[str]) -> "LocationKind":
        """Map an alerts.in.ua ``location_type`` tag onto a kind."""
        tag = (tag or "").strip().lower()
        if tag in ("oblast", "subdivision"):
            return cls.SUBDIVISION
        if tag == "city":
            return cls.CITY
        return cls.DISTRICT


@dataclass(frozen=True)
class LocationNode:
    id: str
    display_name: str
    short_name: str
    kind: LocationKind
    parent_id: Optional[str] = None

    @property
    def is_subdivision(self) -> bool:
        return self.kind is LocationKind.SUBDIVISION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uid": self.id,
            "name": self.display_name,
            "short": self.short_name,
            "type": self.kind.value,
            "parentUid": self.parent_id,
        }


@dataclass(frozen=True)
class RegionalCentre:
    latitude: float
    longitude: float
    city: str


class LocationDirectory:
    """
    Static mapping from location id to metadata.

    Parameters
    ----------
    rows : iterable of (uid, display_name, short_name, kind, parent_uid)
        Defaults to the bundled Ukrainian table.
    centres : dict uid → (lat, lon, city)
        Regional centres for weather lookups.
    """

    def __init__(
        self,
        rows: Optional[Iterable[Tuple[str, str, str, str, Optional[str]]]] = None,
        centres: Optional[Dict[str, Tuple[float, float, str]]] = None,
        default_centre_id: str = DEFAULT_CENTRE_UID,
    ):
        self._nodes: Dict[str, LocationNode] = {}
        self._children: Dict[str, List[LocationNode]] = {}

        for uid, name, short, kind, parent in (LOCATION_ROWS if rows is None else rows):
            if uid in self._nodes:
                raise ValueError(f"Duplicate location id {uid!r}")
            self._nodes[uid] = LocationNode(
                id=uid,
                display_name=name,
                short_name=short,
                kind=LocationKind(kind),
                parent_id=parent,
            )

        self._validate()

        for node in self._nodes.values():
            if node.parent_id is not None:
                self._children.setdefault(node.parent_id, []).append(node)

        raw_centres = REGIONAL_CENTRES if centres is None else centres
        self._centres = {
            uid: RegionalCentre(lat, lon, city)
            for uid, (lat, lon, city) in raw_centres.items()
        }
        self._default_centre_id = default_centre_id

    def _validate(self) -> None:
        for node in self._nodes.values():
            if node.is_subdivision:
                if node.parent_id is not None:
                    raise ValueError(
                        f"Subdivision {node.id!r} must not have a parent"
                    )
                continue
            parent = self._nodes.get(node.parent_id or "")
            if parent is None or not parent.is_subdivision:
                raise ValueError(
                    f"Location {node.id!r} has no valid parent subdivision "
                    f"(parent_id={node.parent_id!r})"
                )

    # ── Lookups ──

    def get(self, location_id: Optional[str]) -> Optional[LocationNode]:
        if location_id is None:
            return None
        return self._nodes.get(str(location_id))

    def require(self, location_id: str) -> LocationNode:
        node = self.get(location_id)
        if node is None:
            raise NotFoundError("Location", uid=location_id)
        return node

    def __contains__(self, location_id: object) -> bool:
        return isinstance(location_id, str) and location_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def all(self) -> List[LocationNode]:
        return list(self._nodes.values())

    def by_kind(self, kind: LocationKind) -> List[LocationNode]:
        return [n for n in self._nodes.values() if n.kind is kind]

    def subdivision_of(self, location_id: str) -> Optional[str]:
        """Id of the subdivision containing ``location_id`` (itself for subdivisions)."""
        node = self.get(location_id)
        if node is None:
            return None
        return node.id if node.is_subdivision else node.parent_id

    def children_of(self, location_id: str) -> List[LocationNode]:
        return list(self._children.get(location_id, ()))

    def find(self, query: str) -> Optional[LocationNode]:
        """
        Resolve free text to a location.

        Exact uid first, then exact name / short name, then the first
        case-insensitive substring match in table order.
        """
        q = (query or "").strip()
        if not q:
            return None
        if q in self._nodes:
            return self._nodes[q]

        lowered = q.lower()
        for node in self._nodes.values():
            if lowered in (node.display_name.lower(), node.short_name.lower()):
                return node
        for node in self._nodes.values():
            if lowered in node.display_name.lower() or lowered in node.short_name.lower():
                return node
        return None

    # ── Weather coordinates ──

    def coordinates_for(self, location_id: Optional[str]) -> RegionalCentre:
        """
        Regional centre for a location.

        Falls back to the containing subdivision, then to the default
        centre when neither has coordinates.
        """
        if location_id in self._centres:
            return self._centres[location_id]
        parent = self.subdivision_of(location_id) if location_id else None
        if parent in self._centres:
            return self._centres[parent]
        return self._centres[self._default_centre_id]
