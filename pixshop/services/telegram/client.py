"""
Telegram client wrapper using httpx sync client.
Provides sync interface for Celery workers (no event loop issues).
"""
import time
import logging

import httpx

from pixshop.core.config import settings
from pixshop.utils.metrics import (
    telegram_requests_total,
    telegram_request_duration_seconds,
)


logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"
MEDIA_GROUP_LIMIT = 10


class TelegramAPIError(Exception):
    """Bot API answered ok=false, or something other than a Bot API JSON body."""

    def __init__(self, method: str, code: int, description: str, retry_after: int | None = None) -> None:
        super().__init__(f"{method} -> {code}: {description}")
        self.method = method
        self.code = code
        self.description = description
        self.retry_after = retry_after


class TelegramClient:
    """
    Sync Telegram client for Celery workers.
    Uses httpx sync client - no event loop issues.
    """

    def __init__(self, token: str | None = None, http_client: httpx.Client | None = None) -> None:
        self._token = token or settings.telegram_bot_token
        self._base_url = f"{TELEGRAM_API_BASE}/bot{self._token}"
        self._client = http_client

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=30.0)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        telegram_requests_total.labels(method=method, status=status).inc()
        telegram_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, data: dict | None = None) -> dict:
        """Make API call to Telegram. Raises TelegramAPIError on ok=false."""
        url = f"{self._base_url}/{method}"
        start = time.time()
        try:
            resp = self.client.post(url, json=data)
        except httpx.HTTPError:
            self._record_request(method, "error", time.time() - start)
            raise
        try:
            result = resp.json()
        except ValueError:
            result = None
        if not isinstance(result, dict):
            # proxy / gateway page instead of a Bot API body
            self._record_request(method, "error", time.time() - start)
            logger.warning(
                "telegram_api_invalid_body",
                extra={"task": method, "status": resp.status_code},
            )
            raise TelegramAPIError(method, resp.status_code, "invalid response body")
        if not result.get("ok"):
            self._record_request(method, "error", time.time() - start)
            error_desc = result.get("description", "Unknown error")
            error_code = result.get("error_code", 0)
            retry_after = (result.get("parameters") or {}).get("retry_after")
            logger.warning(
                "telegram_api_error",
                extra={"task": method, "status": error_code, "error": error_desc},
            )
            raise TelegramAPIError(method, error_code, error_desc, retry_after=retry_after)
        self._record_request(method, "success", time.time() - start)
        return result

    def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = None,
    ) -> int:
        """Send text message to chat. Returns message_id."""
        data = {"chat_id": int(chat_id), "text": text}
        if reply_markup:
            data["reply_markup"] = reply_markup
        if parse_mode:
            data["parse_mode"] = parse_mode
        result = self._api_call("sendMessage", data)
        return result["result"]["message_id"]

    def send_photo(
        self,
        chat_id: int | str,
        photo: str,
        caption: str | None = None,
        reply_markup: dict | None = None,
    ) -> int:
        """Send photo by URL or file_id. Returns message_id."""
        data = {"chat_id": int(chat_id), "photo": photo}
        if caption:
            data["caption"] = caption
        if reply_markup:
            data["reply_markup"] = reply_markup
        result = self._api_call("sendPhoto", data)
        return result["result"]["message_id"]

    def send_media_group(
        self,
        chat_id: int | str,
        media: list[str],
        caption: str | None = None,
    ) -> list[int]:
        """Send album of photos (URLs or file_ids, 2..10 items). Returns message_ids in order."""
        if not 2 <= len(media) <= MEDIA_GROUP_LIMIT:
            raise ValueError(f"media group needs 2..{MEDIA_GROUP_LIMIT} items, got {len(media)}")
        input_media = [{"type": "photo", "media": ref} for ref in media]
        if caption:
            input_media[0]["caption"] = caption
        data = {"chat_id": int(chat_id), "media": input_media}
        result = self._api_call("sendMediaGroup", data)
        return [m["message_id"] for m in result["result"]]

    def delete_message(self, chat_id: int | str, message_id: int) -> None:
        """Delete a message. Raises TelegramAPIError (e.g. already deleted, chat gone)."""
        data = {"chat_id": int(chat_id), "message_id": int(message_id)}
        self._api_call("deleteMessage", data)

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None
