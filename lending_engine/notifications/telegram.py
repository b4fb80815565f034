"""Telegram notification channel for the position monitor."""
import html
import logging
import ssl

import aiohttp
import certifi

from ..config import TelegramConfig

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org"


class TelegramNotifier:
    """Alerts go through the alert bot (with sound), logs through the log bot."""

    def __init__(self, config: TelegramConfig, api_url: str = TELEGRAM_API_URL) -> None:
        self._alert_bot_token = config.alert_bot_token
        self._log_bot_token = config.log_bot_token
        self._chat_id = config.chat_id
        self._api_url = api_url.rstrip("/")

    async def _post(self, bot_token: str, text: str, silent: bool) -> bool:
        if not bot_token or not self._chat_id:
            logger.warning("Telegram credentials not configured")
            return False

        payload = {
            "chat_id": self._chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_notification": silent,
        }
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.post(
                    f"{self._api_url}/bot{bot_token}/sendMessage", json=payload
                ) as response:
                    if response.status != 200:
                        logger.error("Telegram rejected message: HTTP %s", response.status)
                        return False
        except aiohttp.ClientError as e:
            logger.error("Telegram request failed: %s", e)
            return False
        return True

    async def send_alert(self, message: str, subject: str = "") -> bool:
        text = html.escape(message)
        if subject:
            text = f"<b>{html.escape(subject)}</b>\n\n{text}"
        sent = await self._post(self._alert_bot_token, text, silent=False)
        if sent:
            logger.info("Telegram alert sent")
        return sent

    async def send_log(self, message: str, silent: bool = True) -> bool:
        sent = await self._post(self._log_bot_token, html.escape(message), silent=silent)
        if sent:
            logger.debug("Telegram log sent")
        return sent
