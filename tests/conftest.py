import os
import tempfile
from unittest.mock import AsyncMock, MagicMock

import pytest

_tmp = tempfile.mkdtemp(prefix="mediabot-tests-")
os.environ.setdefault("BOT_TOKEN", "123456:TEST-TOKEN")
os.environ.setdefault("TEMP_DIR", os.path.join(_tmp, "temp"))
os.environ.setdefault("LOG_FILE", os.path.join(_tmp, "bot.log"))
os.environ.pop("TIKTOK_COOKIE", None)
os.environ.pop("BROWSERLESS_TOKEN", None)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def make_query(data, user_id=7, chat_id=100, photo=None):
    query = MagicMock()
    query.data = data
    query.answer = AsyncMock()
    query.edit_message_text = AsyncMock()
    query.edit_message_media = AsyncMock()
    query.from_user.id = user_id
    query.message.chat_id = chat_id
    query.message.photo = photo
    query.message.delete = AsyncMock()
    return query


def make_update(query=None, text=None, user_id=7, chat_id=100):
    update = MagicMock()
    update.callback_query = query
    update.effective_user.id = user_id
    update.effective_user.first_name = "Ada"
    update.effective_chat.id = chat_id
    update.message.text = text
    update.message.chat_id = chat_id
    update.message.reply_text = AsyncMock()
    return update


@pytest.fixture
def context():
    ctx = MagicMock()
    ctx.args = []
    ctx.bot.send_message = AsyncMock()
    ctx.bot.send_photo = AsyncMock()
    ctx.bot.send_video = AsyncMock()
    return ctx


@pytest.fixture
def manager():
    """Just enough of BotManager for a command under test."""
    from mediabot.state import UserStateStore

    mgr = MagicMock()
    mgr.user_states = UserStateStore()
    mgr.tiktok_cookie = None
    return mgr
