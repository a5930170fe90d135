"""Tests for PaymentNotifier message rendering and delivery rules."""
from unittest.mock import MagicMock

from app.services.notifications.service import PaymentNotifier, format_amount, source_label, user_display


ORDER = {"uuid": "abc-123", "user_id": 42, "amount": 23000, "currency": "rub", "source": None}


class TestFormatting:
    def test_source_label(self):
        assert source_label(None) == "📱 Mini App"
        assert source_label("aiverse_hub_bot") == "🤖 Хаб-бот"
        assert source_label("some_new_bot") == "some_new_bot"

    def test_amount(self):
        assert format_amount(23000, "rub") == "230.00 ₽"
        assert format_amount(199, "usd") == "1.99 $"

    def test_user_display(self):
        assert user_display({"username": "bob"}) == "@bob"
        assert user_display({"first_name": "Bob", "last_name": "Lee"}) == "Bob Lee"
        assert user_display({}) == "Пользователь без имени"


class TestPaymentNotifier:
    def test_reconciled_header(self, settings, runner, telegram):
        notifier = PaymentNotifier(settings, telegram, runner)

        notifier.payment_succeeded(ORDER, {"telegram_id": 420}, 120, reconciled=True)

        owner_text = telegram.send_message.call_args_list[-1].args[1]
        assert owner_text.startswith("🔔 Оплата согласована! (вебхук пропущен)")
        assert "230.00 ₽" in owner_text
        assert "📍 Источник: 📱 Mini App" in owner_text

    def test_no_owner_configured(self, settings, runner, telegram):
        settings.owner_telegram_id = ""
        notifier = PaymentNotifier(settings, telegram, runner)

        notifier.payment_succeeded(ORDER, {"telegram_id": 420}, 120)

        assert [c.args[0] for c in telegram.send_message.call_args_list] == [420]

    def test_disabled_bot_sends_nothing(self, settings, runner):
        telegram = MagicMock()
        telegram.enabled = False
        notifier = PaymentNotifier(settings, telegram, runner)

        notifier.payment_succeeded(ORDER, {"telegram_id": 420}, 120)

        telegram.send_message.assert_not_called()

    def test_refund_before_credit_goes_to_owner_only(self, settings, runner, telegram):
        notifier = PaymentNotifier(settings, telegram, runner)

        notifier.payment_refunded(ORDER, None, 0)

        calls = telegram.send_message.call_args_list
        assert [c.args[0] for c in calls] == [settings.owner_telegram_id]
        assert "user_id 42" in calls[0].args[1]
