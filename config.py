"""Конфигурационный файл для Bracelet Bot."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Iterable, Mapping

from dotenv import load_dotenv

from app.constants import DEFAULT_MAX_BODY_SIZE


logger = logging.getLogger(__name__)

# Загружаем переменные из .env файла
load_dotenv()

RUN_MODES: tuple[str, ...] = ("polling", "webhook")


def _as_bool(value: str | None, default: bool = False) -> bool:
    """Конвертировать строку в булево значение с поддержкой дефолта."""

    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _int(value: str | None, *, field_name: str | None = None) -> int | None:
    """Безопасно конвертируем строку в int с логированием ошибок."""

    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    try:
        return int(value)
    except ValueError:
        target = f" для {field_name}" if field_name else ""
        logger.warning("Invalid integer%s: %s", target, value)
        return None


def _first_non_empty(env: Mapping[str, str], names: Iterable[str]) -> str:
    for name in names:
        value = env.get(name)
        if value:
            return value
    return ""


def _split_list(value: str | None) -> tuple[str, ...]:
    if not value:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    bot_token: str
    db_url: str = "sqlite+aiosqlite:///data/bracelet.sqlite3"
    debug: bool = False
    run_mode: str = "polling"
    webhook_url: str = ""
    webhook_path: str = "/webhook"
    webhook_host: str = "0.0.0.0"
    webhook_port: int = 8080
    webhook_secret: str = ""
    trust_forwarded: bool = False
    max_body_size: int = DEFAULT_MAX_BODY_SIZE
    extra_allowed_ips: tuple[str, ...] = ()

    @property
    def use_webhook(self) -> bool:
        return self.run_mode == "webhook"


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Собрать Settings из переменных окружения (по умолчанию os.environ)."""

    source: Mapping[str, str] = os.environ if env is None else env

    run_mode = (source.get("RUN_MODE") or "polling").strip().lower()
    if run_mode not in RUN_MODES:
        logger.warning("Unknown RUN_MODE %r, falling back to polling", run_mode)
        run_mode = "polling"

    webhook_port = _int(source.get("WEBHOOK_PORT"), field_name="WEBHOOK_PORT")
    max_body_size = _int(source.get("MAX_BODY_SIZE"), field_name="MAX_BODY_SIZE")

    webhook_path = source.get("WEBHOOK_PATH") or "/webhook"
    if not webhook_path.startswith("/"):
        webhook_path = f"/{webhook_path}"

    return Settings(
        # Совместимость имён токена
        bot_token=_first_non_empty(source, ("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", "TOKEN")),
        db_url=source.get("DB_URL") or "sqlite+aiosqlite:///data/bracelet.sqlite3",
        debug=_as_bool(source.get("DEBUG"), False),
        run_mode=run_mode,
        webhook_url=source.get("WEBHOOK_URL", ""),
        webhook_path=webhook_path,
        webhook_host=source.get("WEBHOOK_HOST") or "0.0.0.0",
        webhook_port=webhook_port if webhook_port is not None else 8080,
        webhook_secret=source.get("WEBHOOK_SECRET", ""),
        trust_forwarded=_as_bool(source.get("TRUST_FORWARDED"), False),
        max_body_size=max_body_size if max_body_size and max_body_size > 0 else DEFAULT_MAX_BODY_SIZE,
        extra_allowed_ips=_split_list(source.get("EXTRA_ALLOWED_IPS")),
    )


def validate_required_settings(settings: Settings) -> None:
    """Проверить наличие обязательных переменных окружения."""

    missing: list[str] = []
    if not settings.bot_token:
        missing.append("BOT_TOKEN")
    if settings.use_webhook and not settings.webhook_url:
        missing.append("WEBHOOK_URL")

    if not missing:
        return

    message = (
        "Missing required environment variables: "
        + ", ".join(missing)
        + ". Please set them in your environment or .env file."
    )
    raise RuntimeError(message)


def _mask(value: str, visible: int = 4) -> str:
    if not value:
        return "not-set"
    if len(value) <= visible:
        return "*" * len(value)
    return f"{value[:visible]}***"


def log_configuration(settings: Settings, target_logger: logging.Logger | None = None) -> None:
    """Вывести в лог текущие настройки (секреты маскируются)."""

    active_logger = target_logger or logger
    active_logger.info(
        "Startup configuration | mode=%s | debug=%s | db=%s | token=%s",
        settings.run_mode,
        settings.debug,
        settings.db_url.split("://", 1)[0],
        _mask(settings.bot_token),
    )
    if settings.use_webhook:
        active_logger.info(
            "WEBHOOK: url=%s | listen=%s:%s%s | secret=%s | trust_forwarded=%s | "
            "max_body_size=%s | extra_ips=%s",
            settings.webhook_url,
            settings.webhook_host,
            settings.webhook_port,
            settings.webhook_path,
            _mask(settings.webhook_secret),
            settings.trust_forwarded,
            settings.max_body_size,
            list(settings.extra_allowed_ips),
        )
