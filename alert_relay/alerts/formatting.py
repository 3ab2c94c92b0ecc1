"""
formatting.py — Telegram (HTML) captions for ALERT / END notifications.

Layout (ALERT):

    🔴 ТРИВОГА!
    ━━━━━━━━━━━━━━━
    📍 <location>

    ⚠️ Загрози:          one line per threat type
    ⏱️ Триває:           since the earliest started_at, when known
    📌 Райони:           up to 5 districts, "+ще" when more
    💬 notes             up to 2 distinct upstream notes
    ━━━━━━━━━━━━━━━
    🇺🇦 В тривозі: N обл. + up to 8 names
    🌤️ Погода в <city>:   full weather block
    🚨 Негайно в укриття!

END drops threats/districts, shows a short weather block first and the
oblasts that are still alerted last.
"""

from __future__ import annotations

from datetime import datetime, timezone
from html import escape
from typing import List, Optional

from alert_relay.alerts.models import CountrySummary, LocationSummary, ThreatType, Transition
from alert_relay.ingestion.weather_service import WeatherReport

SEPARATOR = "━━━━━━━━━━━━━━━"

THREAT_LABELS = {
    ThreatType.AIR_RAID.value: "🚨 Повітряна тривога",
    ThreatType.ARTILLERY_SHELLING.value: "💥 Загроза артобстрілу",
    ThreatType.URBAN_FIGHTS.value: "⚔️ Вуличні бої",
    ThreatType.CHEMICAL.value: "☣️ Хімічна загроза",
    ThreatType.NUCLEAR.value: "☢️ Радіаційна загроза",
    ThreatType.OTHER.value: "⚠️ Загроза",
}

_SUBDIVISION_SUFFIX = " область"


def threat_label(threat: str) -> str:
    return THREAT_LABELS.get(threat, f"⚠️ {threat}")


def format_duration(seconds: float) -> str:
    """Compact Ukrainian duration: 2год 5хв, 7хв 30с, 45с."""
    total = max(0, int(seconds))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}год {minutes}хв"
    if minutes:
        return f"{minutes}хв {secs}с"
    return f"{secs}с"


def short_subdivision_names(names: List[str]) -> List[str]:
    return [n.replace(_SUBDIVISION_SUFFIX, "") for n in names]


def _country_block(country: CountrySummary, heading: str) -> List[str]:
    if country.affected_subdivision_count <= 0:
        return []
    lines = [SEPARATOR, f"<b>🇺🇦 {heading}:</b> {country.affected_subdivision_count} обл."]
    if country.affected_subdivision_names:
        names = ", ".join(escape(n) for n in short_subdivision_names(country.affected_subdivision_names))
        if country.has_more:
            names += " +ще"
        lines.append(f"📋 {names}")
    return lines


def _weather_block(weather: WeatherReport, city: str, *, full: bool) -> List[str]:
    lines = [
        f"<b>🌤️ Погода в {escape(city)}:</b>",
        f"{weather.icon} {escape(weather.description)}",
        f"🌡️ <b>{weather.temp}°C</b> (відчув. {weather.feels_like}°C)",
        f"💨 Вітер: {weather.wind_speed} м/с {weather.wind_direction}".rstrip(),
    ]
    if full:
        lines.append(f"💧 Вологість: {weather.humidity}%")
        lines.append(f"📊 Тиск: {weather.pressure} гПа")
    return lines


def build_caption(
    transition: Transition,
    location_name: str,
    summary: LocationSummary,
    country: CountrySummary,
    weather: Optional[WeatherReport] = None,
    weather_city: str = "",
    *,
    test: bool = False,
    now: Optional[datetime] = None,
) -> str:
    """Caption for one transition; ``test`` marks it as a test message."""
    blocks: List[List[str]] = []

    if transition is Transition.ALERT:
        title = "🧪 <b>ТЕСТ ТРИВОГА!</b>" if test else "🔴 <b>ТРИВОГА!</b>"
        blocks.append([title, SEPARATOR, f"📍 <b>{escape(location_name)}</b>"])

        if summary.threat_type_counts:
            blocks.append(
                ["<b>⚠️ Загрози:</b>"]
                + [f"  {threat_label(t)}" for t in summary.threat_type_counts]
            )
        if summary.started_at is not None:
            elapsed = ((now or datetime.now(timezone.utc)) - summary.started_at).total_seconds()
            blocks.append([f"⏱️ Триває: <b>{format_duration(elapsed)}</b>"])
        if summary.district_names:
            line = "<b>📌 Райони:</b> " + ", ".join(escape(n) for n in summary.district_names)
            if summary.has_more:
                line += " +ще"
            blocks.append([line])
        if summary.notes:
            blocks.append([f"💬 <i>{escape('; '.join(summary.notes))}</i>"])

        country_lines = _country_block(country, "В тривозі")
        if country_lines:
            blocks.append(country_lines)
        if weather is not None:
            blocks.append(_weather_block(weather, weather_city, full=True))
        blocks.append(["🚨 <b>Негайно в укриття!</b>"])
    else:
        title = "🧪 <b>ТЕСТ ВІДБІЙ</b>" if test else "🟢 <b>Відбій тривоги</b>"
        blocks.append([title, SEPARATOR, f"📍 <b>{escape(location_name)}</b>"])
        blocks.append(["✅ <b>Можна виходити</b> 😊"])
        if weather is not None:
            blocks.append(_weather_block(weather, weather_city, full=False))
        country_lines = _country_block(country, "Ще в тривозі")
        if country_lines:
            blocks.append(country_lines)

    if test:
        blocks.append(["<i>🧪 Тестове повідомлення</i>"])

    return "\n\n".join("\n".join(block) for block in blocks)
