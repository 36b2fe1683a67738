import asyncio
import logging
import signal
import time

import uvicorn
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.constants import ParseMode
from telegram.ext import ApplicationBuilder, CallbackQueryHandler, CommandHandler, MessageHandler, filters
from telegram.helpers import escape_markdown

from mediabot.commands import COMMAND_CLASSES, edit_or_resend
from mediabot.config import (
    BOT_TOKEN,
    PORT,
    SWEEP_INTERVAL_MINUTES,
    TEMP_CLEANUP_INTERVAL_MINUTES,
    TIKTOK_COOKIE,
)
from mediabot.health import create_app
from mediabot.state import UserStateStore
from mediabot.utils import clean_temp_files

logger = logging.getLogger("mediabot.manager")


class BotManager:
    """Owns the Telegram application, the registered commands and the per-user wizard state."""

    def __init__(self, token=BOT_TOKEN, tiktok_cookie=TIKTOK_COOKIE, command_classes=COMMAND_CLASSES, application=None):
        self.application = application or ApplicationBuilder().token(token).build()
        self.user_states = UserStateStore()
        self.tiktok_cookie = tiktok_cookie
        self.started_at = time.time()
        self.bot_status = "starting"

        self.commands = {}
        for cls in command_classes:
            command = cls(self)
            self.commands[command.name] = command
            logger.info(f"Loaded command: {command.name}")

        self.register_handlers()
        logger.info(f"Commands loaded: {list(self.commands)}")
        logger.info(f"TikTok Cookie: {'Loaded from .env' if self.tiktok_cookie else 'Not set'}")

    def register_handlers(self):
        app = self.application
        app.add_handler(CommandHandler("start", self.start))
        for command in self.commands.values():
            for handler in command.handlers():
                app.add_handler(handler)
        app.add_handler(CallbackQueryHandler(self.handle_callback))
        app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, self.handle_text))
        app.add_error_handler(self.error_handler)

    def uptime(self) -> float:
        return time.time() - self.started_at

    def cookie_summary(self) -> str:
        return "Enhanced features enabled ✅" if self.tiktok_cookie else "Basic features only ❌"

    # --- handlers ---

    async def start(self, update: Update, context):
        user_name = escape_markdown(update.effective_user.first_name or "User", version=1)
        text = (
            f"🤖 *Welcome {user_name} to the Telegram Bot for Fun & Automation!*\n\n"
            "📥 *Nrmtiktok* - Download TikTok video without custom watermark or TikTok watermark\n"
            "🎨 *Wmtiktok* - Download TikTok video with custom watermark\n"
            "🎌 *Anime* - Search anime and browse episodes\n"
            f"🍪 *Cookie Status* - {self.cookie_summary()}\n\n"
            "Click the button below to explore available commands."
        )
        keyboard = InlineKeyboardMarkup([[InlineKeyboardButton("🎮 Commands", callback_data="show_commands")]])
        await update.message.reply_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=keyboard)

    async def show_main_commands(self, query, context):
        text = (
            "🎮 *Available Commands*\n\n"
            "Choose a category to explore:\n\n"
            f"🍪 *Cookie Status:* {self.cookie_summary()}"
        )
        keyboard = []
        for command in self.commands.values():
            button = command.main_button()
            if button:
                keyboard.append([button])
        keyboard.append([InlineKeyboardButton("🔧 More Tools (Coming Soon)", callback_data="coming_soon")])
        await edit_or_resend(query, context, text, InlineKeyboardMarkup(keyboard))

    async def cancel_current_operation(self, query, context):
        state = self.user_states.clear(query.from_user.id)
        command = self.commands.get(state.get("command")) if state else None
        if command is not None:
            await command.show_menu(query, context)
        else:
            await self.show_main_commands(query, context)

    async def handle_callback(self, update: Update, context):
        query = update.callback_query
        data = query.data

        if data in ("show_commands", "back_to_main"):
            await query.answer()
            await self.show_main_commands(query, context)
        elif data == "cancel":
            await query.answer()
            await self.cancel_current_operation(query, context)
        elif data == "coming_soon":
            await query.answer(text="🚧 More awesome features coming soon!", show_alert=True)
        else:
            for command in self.commands.values():
                if await command.handle_callback(update, context):
                    return
            logger.warning(f"Unhandled callback data: {data}")
            await query.answer(text="❌ Unknown command")

    async def handle_text(self, update: Update, context):
        user_id = update.effective_user.id
        state = self.user_states.get(user_id)
        if not state:
            return

        command = self.commands.get(state.get("command"))
        if command is not None:
            await command.handle_text(update, context, state)

        # commands keep the wizard going by storing a new state object
        if self.user_states.get(user_id) is state:
            self.user_states.clear(user_id)

    async def error_handler(self, update, context):
        logger.error(f"Exception while handling an update: {context.error}", exc_info=context.error)

    # --- runtime ---

    def update_tiktok_cookie(self, cookie):
        self.tiktok_cookie = cookie
        for command in self.commands.values():
            command.on_cookie_changed(cookie)
        logger.info("TikTok cookie updated at runtime")

    def sweep(self) -> int:
        removed = sum(command.sweep() for command in self.commands.values())
        if removed:
            logger.info(f"Sweep removed {removed} expired entries")
        return removed

    async def run(self):
        shutdown_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, shutdown_event.set)

        scheduler = AsyncIOScheduler()
        scheduler.add_job(self.sweep, "interval", minutes=SWEEP_INTERVAL_MINUTES)
        scheduler.add_job(clean_temp_files, "interval", minutes=TEMP_CLEANUP_INTERVAL_MINUTES)
        scheduler.start()
        logger.info("Scheduler started")

        server = uvicorn.Server(uvicorn.Config(create_app(self), host="0.0.0.0", port=PORT, log_level="info"))

        app = self.application
        await app.initialize()
        await app.start()
        await app.updater.start_polling()
        self.bot_status = "running"
        logger.info("Telegram bot started.")
        logger.info(f"Health check available at: http://localhost:{PORT}/health")

        server_task = asyncio.create_task(server.serve())
        stop_task = asyncio.create_task(shutdown_event.wait())
        try:
            await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            logger.info("Shutting down gracefully...")
            self.bot_status = "stopping"
            server.should_exit = True
            stop_task.cancel()
            await asyncio.gather(server_task, return_exceptions=True)

            scheduler.shutdown(wait=False)
            await app.updater.stop()
            await app.stop()
            await app.shutdown()
            self.bot_status = "stopped"
            logger.info("Telegram bot stopped.")
