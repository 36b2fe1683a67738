from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import NetworkError

from mediabot.commands import tiktok
from mediabot.commands.tiktok import TikTokCommand, style_label
from mediabot.downloader import TikTokDownloader
from mediabot.errors import DownloadError

from conftest import make_query, make_update

VIDEO_URL = "https://www.tiktok.com/@someone/video/7234567890123456789"


@pytest.fixture
def downloader(tmp_path):
    d = TikTokDownloader(temp_dir=tmp_path)
    d.download = AsyncMock()
    return d


@pytest.fixture
def command(manager, downloader):
    return TikTokCommand(manager, downloader=downloader)


async def press(command, context, data):
    query = make_query(data)
    handled = await command.handle_callback(make_update(query), context)
    return handled, query


async def test_menu_lists_modules(command, context):
    handled, query = await press(command, context, "tiktok_main")
    assert handled
    text = query.edit_message_text.await_args.args[0]
    assert "Browse 8 watermark styles from 3 modules" in text
    assert "classic, neon, glass" in text


async def test_unrelated_callbacks_are_not_handled(command, context):
    handled, _ = await press(command, context, "a_main")
    assert handled is False
    handled, _ = await press(command, context, "tiktok_nonsense")
    assert handled is False


async def test_set_style_is_not_mistaken_for_preview(command, context):
    _, query = await press(command, context, "tiktok_set_style_neon_glow")
    assert "Set GLOW Style" in query.edit_message_text.await_args.args[0]

    _, query = await press(command, context, "tiktok_style_neon_glow")
    assert "GLOW Style Preview" in query.edit_message_text.await_args.args[0]


async def test_unknown_style_alerts(command, context):
    _, query = await press(command, context, "tiktok_style_neon_missing")
    query.answer.assert_awaited_once_with(text="Style not found!")
    query.edit_message_text.assert_not_awaited()


async def test_module_menu_buttons(command, context):
    _, query = await press(command, context, "tiktok_setmodule_glass")
    markup = query.edit_message_text.await_args.kwargs["reply_markup"]
    data = [b.callback_data for row in markup.inline_keyboard for b in row]
    assert data == [
        "tiktok_set_style_glass_frost",
        "tiktok_set_style_glass_smoke",
        "tiktok_set_style_glass_banner",
        "tiktok_back_to_setwatermark",
    ]


async def test_confirm_style_stores_settings(command, context):
    await press(command, context, "tiktok_confirm_style_glass_frost")
    settings = command.watermark_settings[7]
    assert settings["module"] == "glass"
    assert settings["full_style_name"] == "glass_frost"


async def test_custom_text_flow(command, context, manager):
    await press(command, context, "tiktok_custom_text_neon_glow")
    state = manager.user_states.get(7)
    assert state["operation"] == "custom_text" and state["style_name"] == "neon_glow"

    update = make_update(text="  @MyBrand  ")
    await command.handle_text(update, context, state)
    settings = command.watermark_settings[7]
    assert settings["text"] == "@MyBrand"
    assert settings["original_name"] == "glow"
    assert "Custom Watermark Set" in update.message.reply_text.await_args.args[0]


async def test_invalid_url_keeps_waiting(command, context, manager):
    await press(command, context, "tiktok_nrmtiktok")
    state = manager.user_states.get(7)

    update = make_update(text="not a url")
    await command.handle_text(update, context, state)
    kept = manager.user_states.get(7)
    assert kept == state and kept is not state
    assert "valid TikTok URL" in update.message.reply_text.await_args.args[0]


async def test_cookie_text_updates_manager(command, context, manager):
    await press(command, context, "tiktok_set_new_cookie")
    state = manager.user_states.get(7)
    assert state["step"] == "waiting_for_cookie"

    await command.handle_text(make_update(text="sessionid=abc"), context, state)
    manager.update_tiktok_cookie.assert_called_once_with("sessionid=abc")


def test_cookie_change_reaches_downloader(command, downloader):
    command.on_cookie_changed("sid=1")
    assert downloader.cookie == "sid=1"
    assert "Enhanced downloads enabled" in command.cookie_status_text()


async def test_process_video_with_watermark(command, downloader, context, tmp_path, monkeypatch):
    source = tmp_path / "tiktok_1_tikwm.mp4"
    source.write_bytes(b"raw")
    downloader.download.return_value = source
    outputs = []

    async def fake_watermark(input_path, output_path, settings):
        outputs.append((Path(output_path), settings))
        Path(output_path).write_bytes(b"marked")
        return Path(output_path)

    monkeypatch.setattr(tiktok, "add_watermark", fake_watermark)
    monkeypatch.setattr(tiktok, "get_video_duration", AsyncMock(return_value=12.34))
    monkeypatch.setattr(tiktok, "TEMP_DIR", str(tmp_path))
    status = MagicMock(edit_text=AsyncMock(), delete=AsyncMock())
    context.bot.send_message.return_value = status
    command.watermark_settings[7] = {**command.styles.get("neon_glow"), "text": "Mine"}

    await command.process_video(context, 100, 7, VIDEO_URL)

    output, settings = outputs[0]
    assert settings["text"] == "Mine"
    caption = context.bot.send_video.await_args.kwargs["caption"]
    assert "Watermarked with: glow (neon)" in caption
    assert "Duration: 12.3s" in caption
    assert "Cookie status: No cookie set" in caption
    status.delete.assert_awaited_once()
    assert not source.exists() and not output.exists()


async def test_process_video_failure_edits_status(command, downloader, context, monkeypatch):
    downloader.download.side_effect = DownloadError("All download methods failed. Last error: HTTP 403")
    status = MagicMock(edit_text=AsyncMock(), delete=AsyncMock())
    context.bot.send_message.return_value = status

    await command.process_video(context, 100, 7, VIDEO_URL, watermark=False)
    assert "TikTok blocked the request" in status.edit_text.await_args.args[0]
    context.bot.send_video.assert_not_awaited()


async def test_send_video_retries(command, context, tmp_path, monkeypatch):
    video = tmp_path / "v.mp4"
    video.write_bytes(b"v")
    monkeypatch.setattr(tiktok.asyncio, "sleep", AsyncMock())
    context.bot.send_video.side_effect = [NetworkError("reset"), None]
    assert await command.send_video(context.bot, 100, video, "cap") is True
    assert context.bot.send_video.await_count == 2


async def test_setwatermark_command(command, context):
    context.args = ["NEON_PINK", "My", "Name"]
    update = make_update()
    await command.setwatermark_command(update, context)
    assert command.watermark_settings[7]["text"] == "My Name"
    assert 'with text: "My Name"' in update.message.reply_text.await_args.args[0]

    context.args = ["bogus"]
    await command.setwatermark_command(update, context)
    assert "Invalid style" in update.message.reply_text.await_args.args[0]


def test_style_label():
    assert style_label({"module": "neon", "original_name": "glow"}) == "glow (neon)"
    assert style_label({"effect": "glow"}) == "glow"
    assert style_label({}) == "default"


async def test_process_video_reports_missing_ffmpeg(command, downloader, context, tmp_path, monkeypatch):
    source = tmp_path / "tiktok_1_tikwm.mp4"
    source.write_bytes(b"raw")
    downloader.download.return_value = source
    empty_bin = tmp_path / "bin"
    empty_bin.mkdir()
    monkeypatch.setenv("PATH", str(empty_bin))
    monkeypatch.setattr(tiktok, "TEMP_DIR", str(tmp_path))
    status = MagicMock(edit_text=AsyncMock(), delete=AsyncMock())
    context.bot.send_message.return_value = status

    await command.process_video(context, 100, 7, VIDEO_URL)

    assert "FFmpeg failed or is not installed" in status.edit_text.await_args.args[0]
    context.bot.send_video.assert_not_awaited()
    assert not source.exists()


@pytest.mark.parametrize("name", ["wmtiktok_command", "nrmtiktok_command"])
async def test_slash_commands_reject_invalid_urls(command, context, name):
    command.process_video = AsyncMock()
    context.args = ["https://example.com/not-tiktok"]
    update = make_update()

    await getattr(command, name)(update, context)

    assert "Please send a valid TikTok URL" in update.message.reply_text.await_args.args[0]
    command.process_video.assert_not_awaited()


async def test_slash_command_passes_valid_url(command, context):
    command.process_video = AsyncMock()
    context.args = [VIDEO_URL]
    await command.nrmtiktok_command(make_update(), context)
    command.process_video.assert_awaited_once_with(context, 100, 7, VIDEO_URL, watermark=False)
