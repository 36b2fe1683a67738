import asyncio
import logging
import time
from pathlib import Path

from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import CommandHandler
from telegram.helpers import escape_markdown

from mediabot.commands.base import Command
from mediabot.config import TELEGRAM_SEND_RETRIES, TELEGRAM_TIMEOUT_SECONDS, TEMP_DIR
from mediabot.downloader import TikTokDownloader, describe_download_error, is_valid_tiktok_url
from mediabot.editor import add_watermark, get_video_duration
from mediabot.errors import DownloadError, WatermarkError
from mediabot.styles import DEFAULT_WATERMARK, StyleRegistry
from mediabot.utils import cleanup_files

logger = logging.getLogger("mediabot.commands.tiktok")

PREFIX = "tiktok_"
EXAMPLE_URL = "https://www.tiktok.com/@username/video/1234567890"
INVALID_URL_TEXT = f"❌ Please send a valid TikTok URL\n\nExample: {EXAMPLE_URL}"


def md(value) -> str:
    return escape_markdown(str(value), version=1)


def pairs(buttons):
    return [buttons[i:i + 2] for i in range(0, len(buttons), 2)]


def style_label(settings) -> str:
    if settings.get("module"):
        return f"{settings.get('original_name') or 'custom'} ({settings['module']})"
    return settings.get("effect") or "default"


class TikTokCommand(Command):
    name = "tiktok"

    def __init__(self, manager, downloader=None, styles=None):
        super().__init__(manager)
        self.downloader = downloader or TikTokDownloader(cookie=manager.tiktok_cookie)
        self.styles = styles or StyleRegistry()
        self.watermark_settings = {}

        self.actions = {
            "main": self.show_menu,
            "back_to_main": self.show_menu,
            "styles": self.show_styles_menu,
            "back_to_styles": self.show_styles_menu,
            "setwatermark": self.show_set_watermark_menu,
            "back_to_setwatermark": self.show_set_watermark_menu,
            "wmtiktok": self.start_wm_tiktok,
            "nrmtiktok": self.start_nrm_tiktok,
            "setcookie": self.show_set_cookie_menu,
            "cookiestatus": self.show_cookie_status,
            "set_new_cookie": self.start_set_cookie,
        }
        # longest prefixes first so "set_style_" wins over "style_"
        self.prefixed_actions = [
            ("confirm_style_", self.confirm_style),
            ("custom_text_", self.start_custom_text),
            ("set_style_", self.show_style_setup),
            ("setmodule_", self.show_set_module_styles),
            ("module_", self.show_module_styles),
            ("style_", self.show_style_preview),
        ]

    def main_button(self):
        return InlineKeyboardButton("🎬 TikTok Tools", callback_data="tiktok_main")

    def handlers(self):
        return [
            CommandHandler("wmtiktok", self.wmtiktok_command),
            CommandHandler("nrmtiktok", self.nrmtiktok_command),
            CommandHandler("setwatermark", self.setwatermark_command),
            CommandHandler("setcookie", self.setcookie_command),
            CommandHandler("cookiestatus", self.cookiestatus_command),
        ]

    def on_cookie_changed(self, cookie):
        self.downloader.set_cookie(cookie)

    def user_settings(self, user_id) -> dict:
        return self.watermark_settings.get(user_id) or dict(DEFAULT_WATERMARK)

    # --- callback routing ---

    async def handle_callback(self, update, context) -> bool:
        query = update.callback_query
        data = query.data or ""
        if not data.startswith(PREFIX):
            return False

        action = data[len(PREFIX):]
        handler = self.actions.get(action)
        argument = None
        if handler is None:
            for prefix, candidate in self.prefixed_actions:
                if action.startswith(prefix):
                    handler, argument = candidate, action[len(prefix):]
                    break
        if handler is None:
            return False

        try:
            if argument is None:
                await query.answer()
                await handler(query, context)
            else:
                await handler(query, context, argument)
        except TelegramError as e:
            logger.error(f"Error in TikTok callback {data}: {e}")
            await context.bot.send_message(
                chat_id=query.message.chat_id, text="❌ Error occurred. Please try again."
            )
        return True

    # --- menus ---

    async def show_menu(self, query, context):
        cookie_icon = "✅" if self.downloader.cookie else "❌"
        text = (
            "🎬 *TikTok Tools*\n\n"
            "Choose what you'd like to do:\n\n"
            f"🎨 *Styles* - Browse {self.styles.count()} watermark styles from {len(self.styles.modules)} modules\n"
            "⚙️ *Set Watermark* - Set custom watermark style and text\n"
            "🎥 *Wmtiktok* - Download with custom watermark\n"
            "📱 *Nrmtiktok* - Download without any watermark (clean video)\n"
            f"{cookie_icon} *Set Cookie* - Set TikTok cookie for better downloads\n"
            "📊 *Cookie Status* - Check current cookie status\n\n"
            f"📦 *Loaded Modules:* {', '.join(self.styles.modules)}"
        )
        keyboard = [
            [InlineKeyboardButton("🎨 Styles", callback_data="tiktok_styles")],
            [InlineKeyboardButton("⚙️ Set Watermark", callback_data="tiktok_setwatermark")],
            [
                InlineKeyboardButton("🎥 Wmtiktok", callback_data="tiktok_wmtiktok"),
                InlineKeyboardButton("📱 Nrmtiktok", callback_data="tiktok_nrmtiktok"),
            ],
            [
                InlineKeyboardButton(f"{cookie_icon} Set Cookie", callback_data="tiktok_setcookie"),
                InlineKeyboardButton("📊 Cookie Status", callback_data="tiktok_cookiestatus"),
            ],
            [InlineKeyboardButton("🔙 Back to Main", callback_data="back_to_main")],
        ]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    def _module_buttons(self, callback_prefix, with_counts):
        buttons = []
        for name in self.styles.modules:
            if with_counts:
                label = f"📦 {name.upper()} ({len(self.styles.module_styles(name))})"
            else:
                label = f"⚙️ {name.upper()}"
            buttons.append(InlineKeyboardButton(label, callback_data=f"{callback_prefix}{name}"))
        return pairs(buttons)

    def _style_buttons(self, module_name, callback_prefix, icon):
        buttons = [
            InlineKeyboardButton(f"{icon} {style['original_name'].upper()}", callback_data=f"{callback_prefix}{full_name}")
            for full_name, style in self.styles.module_styles(module_name).items()
        ]
        return pairs(buttons)

    async def show_styles_menu(self, query, context):
        text = "🎨 *Watermark Style Modules*\n\nChoose a style module to explore:"
        keyboard = self._module_buttons("tiktok_module_", with_counts=True)
        keyboard.append([InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_main")])
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def show_module_styles(self, query, context, module_name):
        if module_name not in self.styles.modules:
            await query.answer(text="Module not found!")
            return
        await query.answer()
        text = f"✨ *{md(module_name.upper())} Styles*\n\nChoose a style to preview:"
        keyboard = self._style_buttons(module_name, "tiktok_style_", "✨")
        keyboard.append([InlineKeyboardButton("🔙 Back to Modules", callback_data="tiktok_back_to_styles")])
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def show_style_preview(self, query, context, style_name):
        style = self.styles.get(style_name)
        if not style:
            await query.answer(text="Style not found!")
            return
        await query.answer()
        text = (
            f"✨ *{md(style['original_name'].upper())} Style Preview*\n"
            f"📦 *Module:* {md(style['module'])}\n\n"
            f"🏷️ *Text:* {md(style.get('text') or 'N/A')}\n"
            f"🔤 *Font:* {md(style.get('font') or 'Default')}\n"
            f"📏 *Size:* {style.get('fontSize') or 'Default'}px\n"
            f"🎨 *Color:* {md(style.get('color') or 'Default')}\n"
            f"👻 *Opacity:* {round(100 * (style.get('opacity') or 1))}%\n"
            f"📍 *Position:* {md(style.get('position') or 'Default')}\n"
            f"🔄 *Rotation:* {style.get('rotation') or 0}°\n"
            f"✨ *Effect:* {md(style.get('effect') or 'Custom')}\n\n"
            'This is just a preview. To use this style, go back and use "Set Watermark".'
        )
        keyboard = [
            [InlineKeyboardButton("🔙 Back to Module", callback_data=f"tiktok_module_{style['module']}")],
            [InlineKeyboardButton("🏠 Back to Menu", callback_data="tiktok_back_to_main")],
        ]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def show_set_watermark_menu(self, query, context):
        text = "⚙️ *Set Watermark*\n\nChoose a module to customize styles:"
        keyboard = self._module_buttons("tiktok_setmodule_", with_counts=False)
        keyboard.append([InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_main")])
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def show_set_module_styles(self, query, context, module_name):
        if module_name not in self.styles.modules:
            await query.answer(text="Module not found!")
            return
        await query.answer()
        text = f"⚙️ *Set {md(module_name.upper())} Watermark*\n\nChoose a style to customize:"
        keyboard = self._style_buttons(module_name, "tiktok_set_style_", "⚙️")
        keyboard.append([InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_setwatermark")])
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def show_style_setup(self, query, context, style_name):
        style = self.styles.get(style_name)
        if not style:
            await query.answer(text="Style not found!")
            return
        await query.answer()
        text = (
            f"⚙️ *Set {md(style['original_name'].upper())} Style*\n"
            f"📦 *Module:* {md(style['module'])}\n\n"
            "*Current settings:*\n"
            f"🏷️ Text: {md(style.get('text') or 'Default')}\n"
            f"🔤 Font: {md(style.get('font') or 'Default')}\n"
            f"📏 Size: {style.get('fontSize') or 'Default'}px\n"
            f"🎨 Color: {md(style.get('color') or 'Default')}\n"
            f"✨ Effect: {md(style.get('effect') or 'Custom')}\n\n"
            "Do you want to use the default text or enter custom text?"
        )
        keyboard = [
            [InlineKeyboardButton("✅ Use Default Text", callback_data=f"tiktok_confirm_style_{style_name}")],
            [InlineKeyboardButton("✏️ Enter Custom Text", callback_data=f"tiktok_custom_text_{style_name}")],
            [InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_setwatermark")],
        ]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def start_custom_text(self, query, context, style_name):
        style = self.styles.get(style_name)
        if not style:
            await query.answer(text="Style not found!")
            return
        await query.answer()
        text = (
            "✏️ *Enter Custom Text*\n\n"
            f"Please type the text you want to use for your *{md(style['original_name'].upper())}* "
            f"watermark from the *{md(style['module'])}* module.\n\n"
            "*Examples:*\n"
            '• Your name: "John Doe"\n'
            '• Your brand: "@MyBrand"\n'
            '• Any text: "My Video"\n\n'
            "Send your custom text now:"
        )
        keyboard = [[InlineKeyboardButton("❌ Cancel", callback_data="tiktok_back_to_setwatermark")]]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))
        self.manager.user_states.set(query.from_user.id, {
            "command": self.name,
            "operation": "custom_text",
            "step": "waiting_for_text",
            "style_name": style_name,
        })

    async def confirm_style(self, query, context, style_name):
        style = self.styles.get(style_name)
        if not style:
            await query.answer(text="Style not found!")
            return
        await query.answer()
        self.watermark_settings[query.from_user.id] = {**style, "full_style_name": style_name}
        text = (
            "✅ *Watermark Set Successfully!*\n\n"
            f"*Module:* {md(style['module'])}\n"
            f"*Style:* {md(style['original_name'].upper())}\n"
            f"*Text:* {md(style.get('text') or 'Default')}\n"
            f"*Effect:* {md(style.get('effect') or 'Custom')}\n\n"
            "Your watermark is now ready to use with Wmtiktok!"
        )
        await self.render(query, context, text, self._ready_keyboard())

    def _ready_keyboard(self):
        return InlineKeyboardMarkup([
            [InlineKeyboardButton("🎥 Use Wmtiktok Now", callback_data="tiktok_wmtiktok")],
            [InlineKeyboardButton("🏠 Back to Menu", callback_data="tiktok_back_to_main")],
        ])

    async def start_wm_tiktok(self, query, context):
        settings = self.watermark_settings.get(query.from_user.id)
        if settings and settings.get("module"):
            watermark_info = f"{settings['original_name'].upper()} from {settings['module']} module"
        else:
            watermark_info = "Default watermark"
        text = (
            "🎥 *Wmtiktok - Download with Watermark*\n\n"
            f"*Current watermark:* {md(watermark_info)}\n"
            f"*Text:* {md((settings or {}).get('text') or 'Default')}\n\n"
            "Please send me the TikTok URL you want to download with watermark.\n\n"
            f"*Example:* {md(EXAMPLE_URL)}"
        )
        keyboard = [
            [InlineKeyboardButton("⚙️ Change Watermark", callback_data="tiktok_setwatermark")],
            [InlineKeyboardButton("❌ Cancel", callback_data="tiktok_back_to_main")],
        ]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))
        self.manager.user_states.set(query.from_user.id, {
            "command": self.name,
            "operation": "wmtiktok",
            "step": "waiting_for_url",
        })

    async def start_nrm_tiktok(self, query, context):
        text = (
            "📱 *Nrmtiktok - Download Clean Video*\n\n"
            "This will download the video without any watermark (completely clean).\n\n"
            "Please send me the TikTok URL you want to download.\n\n"
            f"*Example:* {md(EXAMPLE_URL)}"
        )
        keyboard = [[InlineKeyboardButton("❌ Cancel", callback_data="tiktok_back_to_main")]]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))
        self.manager.user_states.set(query.from_user.id, {
            "command": self.name,
            "operation": "nrmtiktok",
            "step": "waiting_for_url",
        })

    async def show_set_cookie_menu(self, query, context):
        text = (
            "🍪 *Set TikTok Cookie*\n\n"
            "Setting a TikTok cookie helps bypass download restrictions and improves success rate.\n\n"
            "*How to get your cookie:*\n"
            "1. Install Cookie-Editor browser extension\n"
            "2. Login to TikTok.com\n"
            "3. Open Cookie-Editor on TikTok\n"
            "4. Copy all cookies\n"
            "5. Send the cookie string here\n\n"
            f"*Current status:* {'✅' if self.downloader.cookie else '❌'} {self.downloader.cookie_status()}"
        )
        keyboard = [
            [InlineKeyboardButton("📝 Enter New Cookie", callback_data="tiktok_set_new_cookie")],
            [InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_main")],
        ]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))

    async def start_set_cookie(self, query, context):
        text = (
            "📝 *Enter TikTok Cookie*\n\n"
            "Please paste your TikTok cookie string here.\n\n"
            "*Note:* The cookie should be a long string containing session information from your browser.\n\n"
            "Send your cookie now:"
        )
        keyboard = [[InlineKeyboardButton("❌ Cancel", callback_data="tiktok_setcookie")]]
        await self.render(query, context, text, InlineKeyboardMarkup(keyboard))
        self.manager.user_states.set(query.from_user.id, {
            "command": self.name,
            "operation": "set_cookie",
            "step": "waiting_for_cookie",
        })

    def cookie_status_text(self) -> str:
        if self.downloader.cookie:
            features = "✅ Enhanced downloads enabled\n✅ Better 403 error bypass\n✅ Higher success rate"
        else:
            features = "❌ Basic downloads only\n❌ May encounter 403 errors\n❌ Limited success rate"
        return f"📊 *Cookie Status*\n\n*Status:* {self.downloader.cookie_status()}\n\n*Features:*\n{features}"

    async def show_cookie_status(self, query, context):
        keyboard = [
            [InlineKeyboardButton("🍪 Set Cookie", callback_data="tiktok_setcookie")],
            [InlineKeyboardButton("🔙 Back", callback_data="tiktok_back_to_main")],
        ]
        await self.render(query, context, self.cookie_status_text(), InlineKeyboardMarkup(keyboard))

    # --- text input ---

    async def handle_text(self, update, context, state):
        message = update.message
        user_id = update.effective_user.id
        text = (message.text or "").strip()
        operation = state.get("operation")

        if operation in ("wmtiktok", "nrmtiktok") and state.get("step") == "waiting_for_url":
            if not is_valid_tiktok_url(text):
                # a fresh copy tells the manager to keep waiting for a URL
                self.manager.user_states.set(user_id, dict(state))
                await message.reply_text(INVALID_URL_TEXT)
                return
            await self.process_video(context, message.chat_id, user_id, text, watermark=operation == "wmtiktok")

        elif operation == "set_cookie" and state.get("step") == "waiting_for_cookie":
            if not text:
                self.manager.user_states.set(user_id, dict(state))
                await message.reply_text("❌ Please provide a cookie string")
                return
            self.manager.update_tiktok_cookie(text)
            await message.reply_text(
                "✅ *TikTok cookie updated successfully!*\n\n"
                "Enhanced download features are now enabled.",
                parse_mode=ParseMode.MARKDOWN,
                reply_markup=InlineKeyboardMarkup([
                    [InlineKeyboardButton("🎥 Try Wmtiktok", callback_data="tiktok_wmtiktok")],
                    [InlineKeyboardButton("🏠 Back to Menu", callback_data="tiktok_back_to_main")],
                ]),
            )

        elif operation == "custom_text" and state.get("step") == "waiting_for_text":
            await self.apply_custom_text(message, user_id, state.get("style_name"), text)

    async def apply_custom_text(self, message, user_id, style_name, custom_text):
        if not custom_text:
            await message.reply_text("❌ Please provide some text for your watermark")
            return
        style = self.styles.get(style_name)
        if not style:
            await message.reply_text("❌ Style not found")
            return

        self.watermark_settings[user_id] = {**style, "text": custom_text, "full_style_name": style_name}
        text = (
            "✅ *Custom Watermark Set!*\n\n"
            f"*Module:* {md(style['module'])}\n"
            f"*Style:* {md(style['original_name'].upper())}\n"
            f"*Your Text:* {md(custom_text)}\n"
            f"*Effect:* {md(style.get('effect') or 'Custom')}\n\n"
            "Your custom watermark is ready to use!"
        )
        await message.reply_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=self._ready_keyboard())

    # --- downloads ---

    async def send_video(self, bot, chat_id, video_path: Path, caption: str) -> bool:
        for attempt in range(1, TELEGRAM_SEND_RETRIES + 1):
            try:
                with video_path.open("rb") as video_file:
                    await bot.send_video(
                        chat_id=chat_id,
                        video=video_file,
                        supports_streaming=True,
                        caption=caption,
                        read_timeout=TELEGRAM_TIMEOUT_SECONDS,
                        write_timeout=TELEGRAM_TIMEOUT_SECONDS,
                    )
                logger.info(f"Sent video {video_path.name} to chat {chat_id}")
                return True
            except TelegramError as e:
                logger.error(f"Attempt {attempt}: Failed to send video - {e}")
                if attempt < TELEGRAM_SEND_RETRIES:
                    await asyncio.sleep(5 * attempt)
        logger.error(f"All {TELEGRAM_SEND_RETRIES} attempts to send video failed.")
        return False

    async def process_video(self, context, chat_id, user_id, url, watermark=True):
        bot = context.bot
        if watermark:
            status = await bot.send_message(chat_id=chat_id, text="⏳ Downloading TikTok video...")
        else:
            status = await bot.send_message(chat_id=chat_id, text="⏳ Downloading clean TikTok video...")

        downloaded = None
        output = None
        try:
            downloaded = await self.downloader.download(url)
            video = downloaded

            if watermark:
                settings = self.user_settings(user_id)
                label = style_label(settings)
                await status.edit_text(f"🎨 Adding {label} watermark...")
                output = Path(TEMP_DIR) / f"watermarked_{int(time.time() * 1000)}.mp4"
                video = await add_watermark(downloaded, output, settings)
                caption = (
                    f"✅ Watermarked with: {label}\n"
                    f"🎨 Styles available: {self.styles.count()} total from {len(self.styles.modules)} modules\n"
                )
            else:
                caption = "✅ Clean video downloaded (no watermark)\n"

            duration = await get_video_duration(video)
            if duration:
                caption += f"⏱ Duration: {duration:.1f}s\n"
            caption += f"🍪 Cookie status: {self.downloader.cookie_status()}"

            await status.edit_text("📤 Uploading video...")
            if not await self.send_video(bot, chat_id, Path(video), caption):
                raise DownloadError("Failed to upload the video to Telegram")
            await status.delete()
        except (DownloadError, WatermarkError) as e:
            logger.error(f"TikTok processing failed for {url}: {e}")
            await status.edit_text(describe_download_error(e))
        finally:
            cleanup_files(downloaded, output)

    # --- slash commands ---

    async def wmtiktok_command(self, update, context):
        if not context.args:
            await update.message.reply_text(
                "Please provide a TikTok URL\n"
                "Usage: /wmtiktok <tiktok_url>\n\n"
                f"📊 Available styles: {self.styles.count()} total from {len(self.styles.modules)} modules\n\n"
                "💡 Use the inline menu for easier access to styles and settings."
            )
            return
        if not is_valid_tiktok_url(context.args[0]):
            await update.message.reply_text(INVALID_URL_TEXT)
            return
        await self.process_video(context, update.effective_chat.id, update.effective_user.id, context.args[0])

    async def nrmtiktok_command(self, update, context):
        if not context.args:
            await update.message.reply_text(
                "Please provide a TikTok URL\n"
                "Usage: /nrmtiktok <tiktok_url>\n\n"
                "This downloads the video without any watermark (clean video)."
            )
            return
        if not is_valid_tiktok_url(context.args[0]):
            await update.message.reply_text(INVALID_URL_TEXT)
            return
        await self.process_video(
            context, update.effective_chat.id, update.effective_user.id, context.args[0], watermark=False
        )

    async def setwatermark_command(self, update, context):
        if not context.args:
            lines = [
                f"🎨 Available watermark styles ({self.styles.count()} total from {len(self.styles.modules)} modules):",
                "",
            ]
            for module_name in self.styles.modules:
                lines.append(f"{module_name.upper()} Module:")
                lines.extend(f"• {name}" for name in self.styles.module_styles(module_name))
                lines.append("")
            lines.append("Usage: /setwatermark <style> [text]")
            lines.append("Example: /setwatermark neon_glow MyName")
            await update.message.reply_text("\n".join(lines))
            return

        style_name = context.args[0].lower()
        custom_text = " ".join(context.args[1:])
        style = self.styles.get(style_name)
        if not style:
            await update.message.reply_text(
                "❌ Invalid style. Use /setwatermark without arguments to see available styles."
            )
            return
        if custom_text:
            style["text"] = custom_text
        style["full_style_name"] = style_name
        self.watermark_settings[update.effective_user.id] = style

        reply = f'✅ Watermark set to "{style["original_name"]}" style from {style["module"]} module'
        if custom_text:
            reply += f' with text: "{custom_text}"'
        await update.message.reply_text(reply)

    async def setcookie_command(self, update, context):
        if not context.args:
            await update.message.reply_text(
                "🍪 Set TikTok Cookie for Enhanced Download Success:\n\n"
                "How to get your TikTok cookie:\n"
                "1. Install Cookie-Editor browser extension\n"
                "2. Login to TikTok.com\n"
                "3. Open Cookie-Editor on TikTok\n"
                "4. Copy all cookies\n"
                "5. Use: /setcookie <your_cookie_string>\n\n"
                f"Current status: {self.downloader.cookie_status()}"
            )
            return
        self.manager.update_tiktok_cookie(" ".join(context.args))
        await update.message.reply_text(
            "✅ TikTok cookie set successfully!\n\nThis should help bypass 403 errors and improve download success rate."
        )

    async def cookiestatus_command(self, update, context):
        await update.message.reply_text(self.cookie_status_text(), parse_mode=ParseMode.MARKDOWN)
