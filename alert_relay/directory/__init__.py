"""
directory — Static Ukrainian location table (oblasts, Kyiv city, raions).

Modules:
    data       — the raw rows and regional-centre coordinates
    directory  — LocationDirectory lookups and containment navigation
"""

from alert_relay.directory.directory import (
    LocationDirectory,
    LocationKind,
    LocationNode,
    RegionalCentre,
)

__all__ = ["LocationDirectory", "LocationKind", "LocationNode", "RegionalCentre"]
