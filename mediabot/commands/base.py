import logging

from telegram.constants import ParseMode
from telegram.error import BadRequest

logger = logging.getLogger("mediabot.commands")


async def edit_or_resend(query, context, text, markup):
    """Replace the menu behind ``query`` with ``text``; photo messages are re-sent as text."""
    message = query.message
    try:
        if message.photo:
            await message.delete()
            await context.bot.send_message(
                chat_id=message.chat_id,
                text=text,
                parse_mode=ParseMode.MARKDOWN,
                reply_markup=markup,
            )
        else:
            await query.edit_message_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)
    except BadRequest as e:
        if "not modified" not in str(e).lower():
            raise


class Command:
    """
    One feature of the bot. The manager shows ``main_button()`` in the
    commands menu, offers every callback query to ``handle_callback`` until
    one returns True, and routes free text to the command named in the
    user's state.
    """

    name = ""

    def __init__(self, manager):
        self.manager = manager

    def main_button(self):
        return None

    def handlers(self):
        """Extra telegram.ext handlers (slash commands) for the application."""
        return []

    async def handle_callback(self, update, context) -> bool:
        return False

    async def handle_text(self, update, context, state):
        pass

    async def show_menu(self, query, context):
        raise NotImplementedError

    def on_cookie_changed(self, cookie):
        pass

    def sweep(self) -> int:
        return 0

    async def render(self, query, context, text, markup):
        await edit_or_resend(query, context, text, markup)
