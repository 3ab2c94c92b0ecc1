"""
weather_service.py — OpenWeatherMap current conditions for notifications.

Fetches ``/data/2.5/weather`` (units=metric, Ukrainian descriptions) for
a regional centre and condenses it into a WeatherReport that the
notification caption embeds.

Error Handling Strategy
========================
Weather is decoration, never a reason to delay or drop a notification:

    no API key configured        → None (logged once at startup)
    network error / timeout      → None
    HTTP 4xx / 5xx               → None
    malformed body               → None

Successful reports are cached per coordinate pair for
WEATHER_CACHE_TTL_SECONDS so a burst of transitions in one oblast costs
one request.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from alert_relay.core.cache import Clock, TTLCache
from alert_relay.core.config import settings

logger = logging.getLogger(__name__)

WIND_DIRECTIONS = ("Пн", "ПнСх", "Сх", "ПдСх", "Пд", "ПдЗх", "Зх", "ПнЗх")

DEFAULT_ICON = "🌡️"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def wind_direction(deg: Optional[float]) -> str:
    """Eight-point compass abbreviation (Ukrainian) for a bearing in degrees."""
    if deg is None:
        return ""
    return WIND_DIRECTIONS[int(round(float(deg) / 45)) % 8]


def weather_icon(code: Optional[int]) -> str:
    """Emoji for an OpenWeatherMap condition id."""
    if not code:
        return DEFAULT_ICON
    if 200 <= code < 300:
        return "⛈️"
    if 300 <= code < 600:
        return "🌧️"
    if 600 <= code < 700:
        return "❄️"
    if 700 <= code < 800:
        return "🌫️"
    if code == 800:
        return "☀️"
    if code > 800:
        return "☁️"
    return DEFAULT_ICON


@dataclass(frozen=True)
class WeatherReport:
    temp: int
    feels_like: int
    description: str
    icon: str
    wind_speed: int
    wind_direction: str
    humidity: int
    pressure: int
    clouds: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "temp": self.temp,
            "feels": self.feels_like,
            "desc": self.description,
            "icon": self.icon,
            "wind": self.wind_speed,
            "windDir": self.wind_direction,
            "humidity": self.humidity,
            "pressure": self.pressure,
            "clouds": self.clouds,
        }


def parse_weather(data: Dict[str, Any]) -> WeatherReport:
    """Condense an OpenWeatherMap response; raises KeyError/TypeError if malformed."""
    main = data["main"]
    conditions = (data.get("weather") or [{}])[0]
    wind = data.get("wind") or {}
    description = conditions.get("description") or ""
    return WeatherReport(
        temp=round(main["temp"]),
        feels_like=round(main.get("feels_like", main["temp"])),
        description=description[:1].upper() + description[1:],
        icon=weather_icon(conditions.get("id")),
        wind_speed=round(wind.get("speed") or 0),
        wind_direction=wind_direction(wind.get("deg")),
        humidity=int(main.get("humidity") or 0),
        pressure=round(main.get("pressure") or 0),
        clouds=int((data.get("clouds") or {}).get("all") or 0),
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class WeatherService:
    """
    Cached OpenWeatherMap client.

    Usage::

        weather = WeatherService()
        report = await weather.fetch(49.44, 32.06)
        if report:
            print(report.temp, report.description)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        cache_ttl: Optional[float] = None,
        language: Optional[str] = None,
        clock: Clock = time.monotonic,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.OPENWEATHERMAP_API_KEY
        self.api_url = api_url or settings.WEATHER_API_URL
        self.timeout = settings.WEATHER_TIMEOUT_SECONDS if timeout is None else timeout
        self.language = language or settings.WEATHER_LANGUAGE
        self._cache: TTLCache[WeatherReport] = TTLCache(
            settings.WEATHER_CACHE_TTL_SECONDS if cache_ttl is None else cache_ttl,
            clock=clock,
        )
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

        if not self._api_key:
            logger.info("Weather API key not configured; notifications go out without weather")

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    @staticmethod
    def _cache_key(lat: float, lon: float) -> Tuple[float, float]:
        return (round(lat, 2), round(lon, 2))

    async def fetch(self, lat: float, lon: float) -> Optional[WeatherReport]:
        """Current conditions at (lat, lon), or None when unavailable."""
        if not self._api_key:
            return None

        key = self._cache_key(lat, lon)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        params = {
            "lat": lat,
            "lon": lon,
            "appid": self._api_key,
            "units": "metric",
            "lang": self.language,
        }
        client = await self._get_client()
        try:
            response = await client.get(self.api_url, params=params)
            response.raise_for_status()
            report = parse_weather(response.json())
        except httpx.HTTPStatusError as exc:
            logger.warning("Weather API: HTTP %d", exc.response.status_code)
            return None
        except httpx.HTTPError as exc:
            logger.warning("Weather request failed: %s", exc)
            return None
        except (ValueError, KeyError, TypeError, IndexError) as exc:
            logger.warning("Weather response malformed: %s", exc)
            return None

        self._cache.set(key, report)
        return report
