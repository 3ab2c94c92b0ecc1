"""
telegram.py — Telegram Bot API sink.

Delivery mechanism:
    • sendPhoto with an HTML caption for rich notifications
        - local file   → multipart upload
        - anything else → passed as ``photo`` (URL or file_id)
    • sendMessage for plain-text notifications and fallbacks
    • Bounded per-request timeout (TELEGRAM_TIMEOUT_SECONDS)

The Bot API answers ``{"ok": true, "result": {...}}`` on success and
``{"ok": false, "error_code": 403, "description": "..."}`` otherwise
(e.g. the user blocked the bot). Both HTTP errors and ``ok: false``
become a FAILED DeliveryAttempt.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx

from alert_relay.alerts.models import DeliveryAttempt, DeliveryStatus
from alert_relay.core.config import settings

logger = logging.getLogger(__name__)


class TelegramSink:
    """Sends notifications through one bot token."""

    name = "telegram"

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token or settings.TELEGRAM_BOT_TOKEN
        if not self._token:
            raise ValueError("TelegramSink requires a bot token")
        self._api_url = (api_url or settings.TELEGRAM_API_URL).rstrip("/")
        self.timeout = settings.TELEGRAM_TIMEOUT_SECONDS if timeout is None else timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def _endpoint(self, method: str) -> str:
        return f"{self._api_url}/bot{self._token}/{method}"

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

    async def send(
        self,
        recipient_id: str,
        caption: str,
        media: Optional[str] = None,
    ) -> DeliveryAttempt:
        """Photo with caption; text only when no media is given."""
        if not media:
            return await self.send_text(recipient_id, caption)

        data = {"chat_id": recipient_id, "caption": caption, "parse_mode": "HTML"}
        path = Path(media)
        if path.is_file():
            try:
                content = await asyncio.to_thread(path.read_bytes)
            except OSError as exc:
                return self._failed(recipient_id, f"{self.name}.sendPhoto", f"Cannot read {media}: {exc}")
            files = {"photo": (path.name, content, "image/png")}
            return await self._call(recipient_id, "sendPhoto", data=data, files=files)

        return await self._call(recipient_id, "sendPhoto", json={**data, "photo": media})

    async def send_text(self, recipient_id: str, text: str) -> DeliveryAttempt:
        payload = {
            "chat_id": recipient_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        return await self._call(recipient_id, "sendMessage", json=payload)

    async def _call(self, recipient_id: str, method: str, **request: Any) -> DeliveryAttempt:
        channel = f"{self.name}.{method}"
        client = await self._get_client()
        try:
            response = await client.post(self._endpoint(method), **request)
            body: Dict[str, Any] = response.json()
        except httpx.HTTPError as exc:
            return self._failed(recipient_id, channel, f"{type(exc).__name__}: {exc}")
        except ValueError:
            return self._failed(recipient_id, channel, f"HTTP {response.status_code}: non-JSON response")

        if response.status_code >= 400 or not body.get("ok"):
            description = body.get("description") or f"HTTP {response.status_code}"
            return self._failed(recipient_id, channel, description, provider_response=body)

        result = body.get("result") or {}
        logger.info(
            "[TELEGRAM] %s → %s (message_id=%s)", method, recipient_id, result.get("message_id"),
            extra={"recipient_id": recipient_id},
        )
        return DeliveryAttempt(
            recipient_id=recipient_id,
            channel=channel,
            status=DeliveryStatus.DELIVERED,
            provider_response={"message_id": result.get("message_id")},
        )

    def _failed(
        self,
        recipient_id: str,
        channel: str,
        error: str,
        provider_response: Optional[Dict[str, Any]] = None,
    ) -> DeliveryAttempt:
        logger.warning(
            "[TELEGRAM] %s failed for %s: %s", channel, recipient_id, error,
            extra={"recipient_id": recipient_id},
        )
        return DeliveryAttempt(
            recipient_id=recipient_id,
            channel=channel,
            status=DeliveryStatus.FAILED,
            error_message=error,
            provider_response=provider_response,
        )
