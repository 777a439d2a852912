"""
WhatsApp Cloud API transport.

Thin async client over the Graph API:
    POST /{version}/{phone_number_id}/messages   text, interactive, document, read receipts
    POST /{version}/{phone_number_id}/media      document upload
    GET  /{version}/{media_id}                    media URL lookup (voice notes)

Every send returns the provider message id ("wamid....") or raises
TransportError. No retries here: the delivery ledger decides whether a
failed reply may be attempted again.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.exceptions import TransportError

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.facebook.com"

# Provider limits for interactive messages
MAX_BUTTONS = 3
MAX_BUTTON_TITLE = 20
MAX_LIST_ROWS = 10
MAX_ROW_TITLE = 24
MAX_ROW_DESCRIPTION = 72
MAX_LIST_BUTTON = 20
MAX_BODY = 4096


def _truncate(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[: limit - 1] + "…"


class WhatsAppClient:
    def __init__(
        self,
        access_token: Optional[str] = None,
        phone_number_id: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.access_token = access_token if access_token is not None else settings.WHATSAPP_ACCESS_TOKEN
        self.phone_number_id = phone_number_id if phone_number_id is not None else settings.WHATSAPP_PHONE_NUMBER_ID
        self.api_version = api_version or settings.WHATSAPP_API_VERSION
        self.timeout = timeout or settings.WHATSAPP_TIMEOUT_SECONDS
        self._client = http_client

    @property
    def base_url(self) -> str:
        return f"{GRAPH_BASE_URL}/{self.api_version}"

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.access_token}"}

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Low-level
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if not self.access_token or not self.phone_number_id:
            raise TransportError("WhatsApp credentials are not configured")
        try:
            response = await self._http().request(method, url, headers=self._headers(), **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"WhatsApp API unreachable: {type(e).__name__}") from e
        if response.status_code >= 400:
            logger.error(f"[WhatsApp] {method} {url.rsplit('/', 1)[-1]} -> {response.status_code}: {response.text[:300]}")
            raise TransportError(
                f"WhatsApp API returned {response.status_code}", status_code=response.status_code
            )
        return response

    async def _send(self, to: str, message_type: str, body: Dict[str, Any]) -> str:
        payload = {
            "messaging_product": "whatsapp",
            "recipient_type": "individual",
            "to": to,
            "type": message_type,
            message_type: body,
        }
        response = await self._request("POST", f"{self.base_url}/{self.phone_number_id}/messages", json=payload)
        try:
            message_id = response.json()["messages"][0]["id"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise TransportError("WhatsApp API response had no message id") from e
        logger.info(f"[WhatsApp] Sent {message_type} to {to[-4:]}: {message_id}")
        return message_id

    # ------------------------------------------------------------------
    # Message types
    # ------------------------------------------------------------------

    async def send_text(self, to: str, body: str) -> str:
        return await self._send(to, "text", {"preview_url": False, "body": _truncate(body, MAX_BODY)})

    async def send_buttons(self, to: str, body: str, buttons: List[Tuple[str, str]]) -> str:
        """buttons: 2-3 (id, title) pairs."""
        if not 1 <= len(buttons) <= MAX_BUTTONS:
            raise ValueError(f"WhatsApp supports 1-{MAX_BUTTONS} reply buttons, got {len(buttons)}")
        interactive = {
            "type": "button",
            "body": {"text": _truncate(body, 1024)},
            "action": {
                "buttons": [
                    {"type": "reply", "reply": {"id": button_id, "title": _truncate(title, MAX_BUTTON_TITLE)}}
                    for button_id, title in buttons
                ]
            },
        }
        return await self._send(to, "interactive", interactive)

    async def send_list(self, to: str, body: str, button_label: str, sections: List[Dict[str, Any]]) -> str:
        """
        sections: [{"title": str, "rows": [{"id", "title", "description"?}]}]

        Rows beyond the provider's 10-row limit are dropped.
        """
        remaining = MAX_LIST_ROWS
        cleaned = []
        for section in sections:
            rows = []
            for row in section.get("rows", [])[:remaining]:
                item = {"id": row["id"], "title": _truncate(row["title"], MAX_ROW_TITLE)}
                if row.get("description"):
                    item["description"] = _truncate(row["description"], MAX_ROW_DESCRIPTION)
                rows.append(item)
            remaining -= len(rows)
            if rows:
                cleaned.append({"title": _truncate(section.get("title"), MAX_ROW_TITLE), "rows": rows})
        if not cleaned:
            raise ValueError("A list message needs at least one row")
        interactive = {
            "type": "list",
            "body": {"text": _truncate(body, 1024)},
            "action": {"button": _truncate(button_label, MAX_LIST_BUTTON), "sections": cleaned},
        }
        return await self._send(to, "interactive", interactive)

    async def send_document(
        self,
        to: str,
        filename: str,
        content: Optional[bytes] = None,
        link: Optional[str] = None,
        caption: Optional[str] = None,
        mime_type: str = "application/pdf",
    ) -> str:
        """Send a document from bytes (uploaded first) or from a public link."""
        document: Dict[str, Any] = {"filename": filename}
        if content is not None:
            document["id"] = await self.upload_media(content, filename, mime_type)
        elif link:
            document["link"] = link
        else:
            raise ValueError("send_document needs content or link")
        if caption:
            document["caption"] = _truncate(caption, 1024)
        return await self._send(to, "document", document)

    async def upload_media(self, content: bytes, filename: str, mime_type: str) -> str:
        response = await self._request(
            "POST",
            f"{self.base_url}/{self.phone_number_id}/media",
            data={"messaging_product": "whatsapp", "type": mime_type},
            files={"file": (filename, content, mime_type)},
        )
        try:
            return response.json()["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError("Media upload response had no id") from e

    async def mark_as_read(self, message_id: str) -> None:
        """Blue ticks. Best effort: failures are logged, never raised."""
        payload = {"messaging_product": "whatsapp", "status": "read", "message_id": message_id}
        try:
            await self._request("POST", f"{self.base_url}/{self.phone_number_id}/messages", json=payload)
        except TransportError as e:
            logger.warning(f"[WhatsApp] mark_as_read failed for {message_id}: {e}")

    async def download_media(self, media_id: str) -> Tuple[bytes, Optional[str]]:
        """Resolve a media id to its URL, then download it. Returns (bytes, mime_type)."""
        meta = await self._request("GET", f"{self.base_url}/{media_id}")
        try:
            info = meta.json()
            url = info["url"]
        except (ValueError, KeyError, TypeError) as e:
            raise TransportError("Media lookup response had no url") from e
        media = await self._request("GET", url)
        return media.content, info.get("mime_type")
