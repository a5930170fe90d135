"""
Telegram client wrapper using httpx sync client.
Only what payment notifications need: sendMessage.
"""
import logging
import time

import httpx

from app.core.config import Settings
from app.utils.metrics import (
    telegram_requests_total,
    telegram_request_duration_seconds,
)


logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramAPIError(Exception):
    def __init__(self, message: str, error_code: int = 0) -> None:
        super().__init__(f"{error_code}: {message}")
        self.error_code = error_code


class TelegramClient:
    """Sync Telegram Bot API client; safe to call from detached worker threads."""

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self._token = settings.telegram_bot_token
        self._base_url = f"{TELEGRAM_API_BASE}/bot{self._token}"
        self._timeout = settings.http_client_timeout
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._token)

    @property
    def client(self) -> httpx.Client:
        """Lazy initialization of httpx client."""
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _record_request(self, method: str, status: str, duration: float) -> None:
        telegram_requests_total.labels(method=method, status=status).inc()
        telegram_request_duration_seconds.labels(method=method).observe(duration)

    def _api_call(self, method: str, data: dict | None = None) -> dict:
        """Make API call to Telegram."""
        resp = self.client.post(f"{self._base_url}/{method}", json=data)
        try:
            result = resp.json()
        except ValueError:
            raise TelegramAPIError(f"non-JSON response ({resp.status_code})", resp.status_code) from None
        if not result.get("ok"):
            error_desc = result.get("description", "Unknown error")
            error_code = result.get("error_code", 0)
            logger.warning("telegram_api_error", extra={"method": method, "status_code": error_code, "error": error_desc})
            raise TelegramAPIError(error_desc, error_code)
        return result

    def send_message(
        self,
        chat_id: str | int,
        text: str,
        reply_markup: dict | None = None,
        parse_mode: str | None = None,
    ) -> dict:
        """Send text message to chat."""
        start = time.time()
        try:
            data: dict = {"chat_id": int(chat_id), "text": text}
            if reply_markup:
                data["reply_markup"] = reply_markup
            if parse_mode:
                data["parse_mode"] = parse_mode
            result = self._api_call("sendMessage", data)
            self._record_request("sendMessage", "success", time.time() - start)
            return result
        except Exception as e:
            self._record_request("sendMessage", "error", time.time() - start)
            logger.error("telegram_send_failed", extra={"error": str(e), "chat_id": chat_id})
            raise

    def close(self) -> None:
        """Close httpx client."""
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Failed to close client", extra={"error": str(e)})
            finally:
                self._client = None
