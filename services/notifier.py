"""Admin notifier — forwards feedback the tutor collected to a Telegram chat.

Also delivers the end-of-session progress report to the learner's own chat.

Best effort end to end: missing credentials make every call a no-op, and
HTTP failures are logged and reported as ``False``, never raised.
"""

from __future__ import annotations

import logging

import httpx

from config.settings import get_settings

logger = logging.getLogger(__name__)

NOTIFICATION_HEADER = "🔔 **LINGO FEEDBACK**"


def format_feedback_notification(feedback: str) -> str:
    """Admin message for feedback the tutor drew out of the user mid-chat."""
    return f'🗣 **Leo got the user talking!**\n\nFeedback: "{feedback}"'


def format_session_summary(user_name: str, level: int, xp_gained: int, corrections: int) -> str:
    """Learner-facing Markdown report for a finished session."""
    return (
        "*🦁 LINGO: ОТЧЕТ О ПРАКТИКЕ*\n\n"
        f"Потрясающе, *{user_name}*! Ты стал на шаг ближе к свободному английскому.\n\n"
        "📊 *Статистика сессии:*\n"
        "━━━━━━━━━━━━━━━\n"
        f"🔝 *Уровень:* {level}\n"
        f"✨ *Опыт:* +{xp_gained} XP\n"
        f"🎯 *Исправлено ошибок:* {corrections}\n\n"
        "💭 *Leo говорит:* \"Твой прогресс вдохновляет! Увидимся на следующей тренировке в Lingo.\"\n\n"
        "🔥 _Не сбавляй темп!_"
    )


class AdminNotifier:
    """Send Markdown messages to the admin chat via the Telegram Bot API."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        api_base: str = "https://api.telegram.org",
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bot_token = bot_token
        self._chat_id = chat_id
        self._api_base = api_base.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self._bot_token and self._chat_id)

    async def notify_admin(self, text: str) -> bool:
        """Post *text* to the admin chat.  Returns True when Telegram accepted it."""
        if not self._chat_id:
            logger.debug("Admin notifier disabled — admin chat id not set")
            return False
        return await self.send_message(self._chat_id, f"{NOTIFICATION_HEADER}\n\n{text}")

    async def send_message(self, chat_id: str, text: str) -> bool:
        """Post *text* to any chat the bot can reach (the learner's, for reports)."""
        if not self._bot_token:
            logger.debug("Telegram bot token not set — message dropped")
            return False

        url = f"{self._api_base}/bot{self._bot_token}/sendMessage"
        payload = {
            "chat_id": chat_id,
            "text": text,
            "parse_mode": "Markdown",
        }
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Telegram sendMessage to chat=%s failed: %s", chat_id, exc)
            return False
        return True

    async def close(self) -> None:
        await self._client.aclose()


_notifier: AdminNotifier | None = None


def get_notifier() -> AdminNotifier:
    """Get the singleton notifier configured from Settings."""
    global _notifier
    if _notifier is None:
        settings = get_settings()
        _notifier = AdminNotifier(
            settings.telegram_bot_token,
            settings.telegram_admin_chat_id,
            api_base=settings.telegram_api_base,
            timeout=settings.notifier_timeout,
        )
    return _notifier
