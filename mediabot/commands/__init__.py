from mediabot.commands.anime import AnimeCommand
from mediabot.commands.base import Command, edit_or_resend
from mediabot.commands.tiktok import TikTokCommand

# Order is the order of the buttons in the commands menu
COMMAND_CLASSES = (AnimeCommand, TikTokCommand)

__all__ = ["COMMAND_CLASSES", "AnimeCommand", "Command", "TikTokCommand", "edit_or_resend"]
