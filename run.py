import asyncio
import logging

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.types import BotCommand, BotCommandScopeAllPrivateChats
from aiogram.webhook.aiohttp_server import SimpleRequestHandler, setup_application
from aiohttp import web
from sqlalchemy.ext.asyncio import AsyncEngine

from app.constants import ALLOWED_UPDATES
from app.database.models import async_main, create_engine_and_sessionmaker
from app.database.storage import SQLAlchemyStorage
from app.gateway import build_ip_filter, gateway_middleware
from app.texts import get_text
from app.user import user
from config import Settings, load_settings, log_configuration, validate_required_settings

logger = logging.getLogger(__name__)

BOT_COMMANDS: tuple[str, ...] = ("start", "cancel", "last", "help")


def configure_logging(debug: bool) -> None:
    log_level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )
    logging.getLogger("aiogram").setLevel(log_level)
    logging.getLogger("aiogram.event").setLevel(log_level)


async def _configure_bot_commands(bot: Bot) -> None:
    for lang in ("ru", "en"):
        commands = [
            BotCommand(command=name, description=get_text(f"commands.{name}", lang))
            for name in BOT_COMMANDS
        ]
        try:
            await bot.set_my_commands(
                commands,
                scope=BotCommandScopeAllPrivateChats(),
                language_code=None if lang == "ru" else lang,
            )
            logger.debug("Private chat commands configured for %s: %s", lang, list(BOT_COMMANDS))
        except Exception as exc:  # noqa: BLE001 - логируем, но не прерываем запуск
            logger.warning("Failed to configure %s commands: %s", lang, exc)


async def startup(bot: Bot, engine: AsyncEngine, settings: Settings) -> None:
    """Функция запуска - инициализация БД, команд и webhook"""
    try:
        await async_main(engine)
        logger.info("Database initialized")

        await _configure_bot_commands(bot)

        if settings.use_webhook:
            await bot.set_webhook(
                url=settings.webhook_url,
                secret_token=settings.webhook_secret or None,
                allowed_updates=list(ALLOWED_UPDATES),
            )
            logger.info("Webhook registered: %s", settings.webhook_url)
        else:
            await bot.delete_webhook(drop_pending_updates=False)

        logger.info("Bracelet Bot started successfully!")
        logger.info("%s", "=" * 50)
    except Exception as e:
        logger.exception("Startup failed: %s", e)
        raise


async def shutdown(engine: AsyncEngine) -> None:
    """Функция остановки бота"""
    logger.info("Stopping Bracelet Bot...")
    await engine.dispose()
    logger.info("Bracelet Bot stopped")


def build_webhook_app(dispatcher: Dispatcher, bot: Bot, settings: Settings) -> web.Application:
    app = web.Application(
        middlewares=[
            gateway_middleware(
                settings.webhook_path,
                ip_filter=build_ip_filter(settings.extra_allowed_ips),
                secret=settings.webhook_secret,
                max_body_size=settings.max_body_size,
                trust_forwarded=settings.trust_forwarded,
            )
        ],
        client_max_size=settings.max_body_size,
    )
    SimpleRequestHandler(
        dispatcher=dispatcher,
        bot=bot,
        secret_token=settings.webhook_secret or None,
    ).register(app, path=settings.webhook_path)
    setup_application(app, dispatcher, bot=bot)
    return app


async def run_webhook(dispatcher: Dispatcher, bot: Bot, settings: Settings) -> None:
    runner = web.AppRunner(build_webhook_app(dispatcher, bot, settings))
    await runner.setup()
    site = web.TCPSite(runner, host=settings.webhook_host, port=settings.webhook_port)
    await site.start()
    logger.info(
        "Listening for webhook updates on %s:%s%s",
        settings.webhook_host,
        settings.webhook_port,
        settings.webhook_path,
    )
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


async def main():
    """Основная функция запуска бота"""

    settings = load_settings()
    configure_logging(settings.debug)
    logger.debug("Bracelet Bot starting in debug mode") if settings.debug else logger.info(
        "Bracelet Bot starting in production mode"
    )

    try:
        validate_required_settings(settings)
    except RuntimeError as err:
        logging.critical("%s", err)
        raise SystemExit(1) from err

    log_configuration(settings, logger)

    engine, session_factory = create_engine_and_sessionmaker(settings.db_url, echo=settings.debug)

    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )

    # Состояние диалога хранится в БД; settings и фабрика сессий доступны хендлерам
    dp = Dispatcher(
        storage=SQLAlchemyStorage(session_factory),
        settings=settings,
        engine=engine,
        session_factory=session_factory,
    )
    dp.include_routers(user)

    dp.startup.register(startup)
    dp.shutdown.register(shutdown)

    try:
        if settings.use_webhook:
            await run_webhook(dp, bot, settings)
        else:
            await dp.start_polling(bot, allowed_updates=list(ALLOWED_UPDATES))
    finally:
        await bot.session.close()


if __name__ == '__main__':
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
    except Exception as e:
        logger.critical("Fatal error: %s", e)
