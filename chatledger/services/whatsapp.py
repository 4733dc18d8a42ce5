"""WhatsApp Cloud API client: outbound text and voice-note downloads."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from chatledger.core.config import Settings


class WhatsAppError(Exception):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class WhatsAppClient:
    def __init__(self, settings: Settings):
        self.api_root = settings.get_whatsapp_api_root()
        self.access_token = settings.whatsapp_access_token
        self.phone_number_id = settings.whatsapp_phone_number_id
        self.timeout = settings.whatsapp_timeout

    @property
    def configured(self) -> bool:
        return bool(self.access_token and self.phone_number_id)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    async def send_text(self, to: str, body: str) -> dict[str, Any]:
        """
        Send a plain text message.

        Raises:
            WhatsAppError: credentials are missing or the Graph API rejected the call
        """
        if not self.configured:
            raise WhatsAppError("WhatsApp credentials are not configured")

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        url = f"{self.api_root}/{self.phone_number_id}/messages"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=self._headers(), json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise WhatsAppError(
                f"Graph API returned {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise WhatsAppError(f"Failed to reach Graph API: {exc}") from exc

        logger.debug("WhatsApp message sent", status_code=response.status_code, body_length=len(body))
        return response.json()

    async def download_media(self, media_id: str) -> bytes:
        """Resolve the media URL, then fetch the binary with the same token."""
        if not self.access_token:
            raise WhatsAppError("WhatsApp credentials are not configured")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                meta = await client.get(f"{self.api_root}/{media_id}", headers=self._headers())
                meta.raise_for_status()
                media_url = meta.json().get("url")
                if not media_url:
                    raise WhatsAppError(f"Media {media_id} has no download URL")
                media = await client.get(media_url, headers=self._headers())
                media.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise WhatsAppError(
                f"Media download failed with {exc.response.status_code}",
                status_code=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise WhatsAppError(f"Failed to download media: {exc}") from exc

        logger.debug("WhatsApp media downloaded", media_id=media_id, size=len(media.content))
        return media.content
