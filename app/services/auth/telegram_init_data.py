"""
Telegram Mini App initData validation.
https://core.telegram.org/bots/webapps#validating-data-received-via-the-mini-app
"""
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass
from urllib.parse import parse_qsl

logger = logging.getLogger("auth")


@dataclass(frozen=True)
class TelegramUser:
    id: int
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


def validate_init_data(
    init_data: str,
    bot_token: str,
    max_age_seconds: int = 86400,
    now: float | None = None,
) -> TelegramUser | None:
    """Return the signed-in Telegram user, or None if initData is invalid or stale."""
    if not init_data or not bot_token:
        return None

    params = dict(parse_qsl(init_data, keep_blank_values=True))
    received_hash = params.pop("hash", None)
    if not received_hash:
        logger.warning("init_data_missing_hash")
        return None

    data_check_string = "\n".join(f"{k}={params[k]}" for k in sorted(params))
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    calculated = hmac.new(secret_key, data_check_string.encode(), hashlib.sha256).hexdigest()
    if not hmac.compare_digest(calculated, received_hash):
        logger.warning("init_data_invalid_hash")
        return None

    auth_date = params.get("auth_date")
    if auth_date:
        try:
            age = (now if now is not None else time.time()) - int(auth_date)
        except ValueError:
            logger.warning("init_data_bad_auth_date")
            return None
        if age > max_age_seconds:
            logger.warning("init_data_expired")
            return None

    try:
        user = json.loads(params.get("user") or "null")
    except ValueError:
        user = None
    if not isinstance(user, dict) or not user.get("id"):
        logger.warning("init_data_missing_user")
        return None

    return TelegramUser(
        id=int(user["id"]),
        username=user.get("username"),
        first_name=user.get("first_name"),
        last_name=user.get("last_name"),
    )
