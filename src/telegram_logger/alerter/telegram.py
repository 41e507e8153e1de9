"""Telegram Bot API client for sending alerts."""

from typing import Any

import httpx
import structlog

log = structlog.get_logger()

DEFAULT_API_BASE = "https://api.telegram.org"
DEFAULT_TIMEOUT = 5.0


class TelegramClient:
    """Minimal Telegram Bot API client for sendMessage."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            bot_token: Bot token from @BotFather
            chat_id: User, group or channel id (channels prefixed with @)
            api_base: Bot API host, overridable for self-hosted API servers
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests)
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self._http = httpx.Client(timeout=timeout, transport=transport)

    @property
    def url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    def send_message(self, text: str, markdown: bool = True) -> dict[str, Any]:
        """Send a message to the configured chat.

        Args:
            text: Message text
            markdown: If True, ask Telegram to render it as Markdown

        Returns:
            The API response body. Transport failures and unparseable bodies
            are returned as {"ok": False, "description": ...} instead of raising.
        """
        payload: dict[str, Any] = {
            "chat_id": self.chat_id,
            "text": text,
            "disable_web_page_preview": True,
        }
        if markdown:
            payload["parse_mode"] = "Markdown"

        try:
            # Telegram answers rejected messages with 4xx and an ok=false body
            response = self._http.post(self.url, json=payload)
        except httpx.HTTPError as e:
            log.debug("Telegram request failed", error=str(e))
            return {"ok": False, "description": str(e)}

        try:
            body = response.json()
        except ValueError:
            body = None

        if not isinstance(body, dict):
            log.debug("Telegram returned no usable body", status=response.status_code)
            return {"ok": False, "description": "No response"}

        if not body.get("ok", False):
            log.debug(
                "Telegram API rejected message",
                status=response.status_code,
                description=body.get("description"),
                markdown=markdown,
            )
        return body

    def close(self) -> None:
        self._http.close()
