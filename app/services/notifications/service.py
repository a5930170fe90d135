"""
Payment notifications: buyer receipt and operator alerts over Telegram.

Everything here is best-effort. Messages are sent as detached tasks, so a
Telegram outage can never change a payment outcome or an HTTP status.
"""
import logging
from typing import Any

from app.core.config import Settings
from app.services.telegram.client import TelegramClient
from app.utils.detached import DetachedRunner

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_LABEL = "📱 Mini App"

# Where the purchase was made, as shown to the operator
SOURCE_LABELS: dict[str, str] = {
    "aiverse_telegram_app": "📱 Mini App",
    "aiverse_hub_bot": "🤖 Хаб-бот",
    "BananNanoBot": "🍌 @BananNanoBot",
    "seedreameditbot": "⚡ @seedreameditbot",
    "GPTimagePro_bot": "🤖 @GPTimagePro_bot",
    "sora_pro_bot": "🎬 Sora Pro Bot",
    "seedancepro_bot": "🌸 @seedancepro_bot",
    "TryOnAI_bot": "👗 @TryOnAI_bot",
    "wan3bot": "🎥 @wan3bot",
    "klingprobot": "🎬 @klingprobot",
}

CURRENCY_SYMBOLS = {"eur": "€", "usd": "$", "rub": "₽"}


def source_label(source: str | None) -> str:
    if not source:
        return DEFAULT_SOURCE_LABEL
    return SOURCE_LABELS.get(source, source)


def format_amount(amount: Any, currency: str | None) -> str:
    symbol = CURRENCY_SYMBOLS.get((currency or "").lower(), (currency or "").upper())
    return f"{int(amount or 0) / 100:.2f} {symbol}"


def user_display(user: dict) -> str:
    if user.get("username"):
        return f"@{user['username']}"
    full_name = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    return full_name or "Пользователь без имени"


class PaymentNotifier:
    def __init__(self, settings: Settings, telegram: TelegramClient, runner: DetachedRunner) -> None:
        self.telegram = telegram
        self.runner = runner
        self.owner_chat_id = settings.owner_telegram_id or None

    def _send(self, chat_id: Any, text: str) -> None:
        if not chat_id:
            return
        if not self.telegram.enabled:
            logger.info("notification_skipped_no_token", extra={"chat_id": chat_id})
            return
        self.runner.spawn(self.telegram.send_message, chat_id, text)

    def payment_succeeded(
        self,
        order: dict,
        user: dict,
        tokens_added: int,
        bonus_tokens: int = 0,
        email: str | None = None,
        notify_buyer: bool = True,
        reconciled: bool = False,
    ) -> None:
        amount = format_amount(order.get("amount"), order.get("currency"))
        telegram_id = user.get("telegram_id")

        if notify_buyer and telegram_id:
            promo = f"\n(Включая бонус +{bonus_tokens} 🎁)" if bonus_tokens else ""
            self._send(
                telegram_id,
                "✅ Оплата через карту прошла успешно!\n\n"
                f"💰 Начислено: {tokens_added} токенов{promo}\n"
                f"💳 Сумма: {amount}\n\n"
                "Спасибо за покупку! 🙏",
            )

        if self.owner_chat_id:
            header = "🔔 Оплата согласована! (вебхук пропущен)" if reconciled else "🔔 Новая оплата!"
            promo = f" (+{bonus_tokens} бонус 🎁)" if bonus_tokens else ""
            self._send(
                self.owner_chat_id,
                f"{header}\n\n"
                f"👤 Пользователь: {user_display(user)}\n"
                f"📧 Email: {email or order.get('email') or 'не указана'}\n"
                f"🆔 Telegram ID: {telegram_id}\n\n"
                f"💰 Оплачено: {tokens_added} токенов{promo}\n"
                f"💳 Сумма: {amount}\n"
                f"📍 Источник: {source_label(order.get('source'))}\n\n"
                f"🔗 Order ID: {order.get('uuid')}",
            )

    def payment_refunded(
        self,
        order: dict,
        user: dict | None,
        tokens_revoked: int,
        notify_buyer: bool = True,
    ) -> None:
        """user is None when the order was refunded before it was ever credited."""
        amount = format_amount(order.get("amount"), order.get("currency"))
        telegram_id = user.get("telegram_id") if user else None

        if notify_buyer and telegram_id and tokens_revoked:
            self._send(
                telegram_id,
                "↩️ Платёж возвращён\n\n"
                f"💰 Списано: {tokens_revoked} токенов\n"
                f"💳 Сумма: {amount}",
            )

        if self.owner_chat_id:
            who = user_display(user) if user else f"user_id {order.get('user_id')}"
            self._send(
                self.owner_chat_id,
                "💸 Возврат платежа!\n\n"
                f"👤 Пользователь: {who}\n"
                f"🆔 Telegram ID: {telegram_id}\n\n"
                f"💰 Списано: {tokens_revoked} токенов\n"
                f"💳 Сумма: {amount}\n"
                f"📍 Источник: {source_label(order.get('source'))}\n\n"
                f"🔗 Order ID: {order.get('uuid')}",
            )
