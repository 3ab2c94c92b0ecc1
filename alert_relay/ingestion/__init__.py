"""
ingestion — Upstream data sources.

Modules:
    alert_source     — alerts.in.ua active alerts (cache + retry)
    weather_service  — OpenWeatherMap current conditions
"""
