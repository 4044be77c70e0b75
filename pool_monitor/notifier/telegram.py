# pool_monitor/notifier/telegram.py
import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from telegram import Bot, BotCommand, Update
from telegram.error import TelegramError
from telegram.ext import Application, CommandHandler, ContextTypes

logger = logging.getLogger(__name__)

WELCOME_MESSAGE = """
🔔 <b>Pool Monitor</b> - DEX liquidity pool monitoring

<b>Alerts:</b>
• Price change over the rolling window
• Liquidity change over the rolling window
• Recovery notice when a change falls back below threshold

Type /help for all commands
"""

HELP_MESSAGE = """
📖 <b>Commands</b>

/status - monitored pools and alert state
/help - this message
"""

BOT_COMMANDS = [
    BotCommand("start", "Start"),
    BotCommand("help", "Help"),
    BotCommand("status", "Pool status"),
]


class TelegramNotifier:
    def __init__(self, bot_token: str, chat_ids: list[str]):
        self.bot_token = bot_token
        self.chat_ids = chat_ids
        self.bot = Bot(token=bot_token)
        self.app: Application | None = None  # type: ignore[type-arg]

        # Callbacks
        self.on_status: Callable[[], Coroutine[Any, Any, str]] | None = None

    async def send_message(self, chat_id: str, text: str) -> None:
        await self.bot.send_message(
            chat_id=chat_id,
            text=text,
            parse_mode="HTML",
        )

    async def broadcast(self, text: str) -> bool:
        """发送到所有 chat，任一失败返回 False"""
        results = await asyncio.gather(
            *(self.send_message(chat_id, text) for chat_id in self.chat_ids),
            return_exceptions=True,
        )
        ok = True
        for chat_id, result in zip(self.chat_ids, results):
            if isinstance(result, (TelegramError, OSError)):
                logger.error(f"Failed to send Telegram message to {chat_id}: {result}")
                ok = False
            elif isinstance(result, BaseException):
                raise result
        if ok:
            logger.info(f"Telegram notification sent to {len(self.chat_ids)} chats")
        return ok

    async def _handle_status(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return

        if self.on_status:
            text = await self.on_status()
            await update.message.reply_text(text, parse_mode="HTML")
        else:
            await update.message.reply_text("Monitor running")

    async def _handle_start(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(WELCOME_MESSAGE, parse_mode="HTML")

    async def _handle_help(self, update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.message:
            return
        await update.message.reply_text(HELP_MESSAGE, parse_mode="HTML")

    def setup_handlers(self, app: Application) -> None:  # type: ignore[type-arg]
        app.add_handler(CommandHandler("start", self._handle_start))
        app.add_handler(CommandHandler("help", self._handle_help))
        app.add_handler(CommandHandler("status", self._handle_status))

    async def start_polling(self) -> None:
        self.app = Application.builder().token(self.bot_token).build()
        self.setup_handlers(self.app)
        await self.app.initialize()
        await self.app.start()

        # Set bot command menu
        await self.bot.set_my_commands(BOT_COMMANDS)

        if self.app.updater:
            await self.app.updater.start_polling()

    async def stop_polling(self) -> None:
        if self.app:
            if self.app.updater:
                await self.app.updater.stop()
            await self.app.stop()
            await self.app.shutdown()
