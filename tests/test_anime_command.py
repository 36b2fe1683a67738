from unittest.mock import AsyncMock, MagicMock

import pytest

from mediabot.anime.service import AnimeService
from mediabot.anime.sites import make_result
from mediabot.commands.anime import EXPIRED_TEXT, AnimeCommand
from mediabot.errors import ScrapeError

from conftest import make_query, make_update


@pytest.fixture
def service(clock):
    return AnimeService(sites=[], clock=clock)


@pytest.fixture
def command(manager, service):
    return AnimeCommand(manager, service=service)


def results(count, image=None):
    return [make_result("api", id=f"id{i}", title=f"Title {i}", image=image) for i in range(count)]


async def test_ignores_other_prefixes(command, context):
    update = make_update(make_query("tiktok_main"))
    assert await command.handle_callback(update, context) is False
    update.callback_query.answer.assert_not_awaited()


async def test_main_menu(command, context):
    query = make_query("a_main")
    assert await command.handle_callback(make_update(query), context) is True
    query.answer.assert_awaited_once()
    text = query.edit_message_text.await_args.args[0]
    assert "Anime Search & Download" in text


async def test_search_button_waits_for_query(command, context, manager):
    query = make_query("a_search")
    await command.handle_callback(make_update(query), context)
    assert manager.user_states.get(7) == {"command": "anime", "operation": "search", "step": "waiting_query"}


async def test_text_query_sends_gallery_photo(command, service, context, manager):
    service.search = AsyncMock(return_value=(results(2, image="https://img/0.jpg"), 1, False))
    loading = MagicMock(delete=AsyncMock(), edit_text=AsyncMock())
    context.bot.send_message.return_value = loading
    state = {"command": "anime", "operation": "search", "step": "waiting_query"}
    manager.user_states.set(7, state)

    await command.handle_text(make_update(text="dandadan"), context, state)

    service.search.assert_awaited_once_with("dandadan", 1)
    loading.delete.assert_awaited_once()
    kwargs = context.bot.send_photo.await_args.kwargs
    assert kwargs["photo"] == "https://img/0.jpg"
    assert "Title 0" in kwargs["caption"]
    assert manager.user_states.get(7) is None


async def test_no_results_edits_loading_message(command, service, context):
    service.search = AsyncMock(return_value=([], 1, False))
    loading = MagicMock(delete=AsyncMock(), edit_text=AsyncMock())
    context.bot.send_message.return_value = loading

    await command.search(context, 100, 7, "zzz")
    assert 'No anime found for "zzz"' in loading.edit_text.await_args.args[0]
    context.bot.send_photo.assert_not_awaited()


async def test_gallery_next_edits_text_message(command, service, context):
    session_id = service.create_session(7, "q", results(3))
    query = make_query(command.callbacks.encode("gallery", {"session": session_id, "direction": "next"}))

    await command.handle_callback(make_update(query), context)
    assert service.get_session(session_id)["current_index"] == 1
    assert "Title 1" in query.edit_message_text.await_args.args[0]


async def test_gallery_photo_edits_media(command, service, context):
    session_id = service.create_session(7, "q", results(2, image="https://img/x.jpg"))
    query = make_query(command.callbacks.encode("gallery", {"session": session_id, "direction": "next"}), photo=[object()])

    await command.handle_callback(make_update(query), context)
    media = query.edit_message_media.await_args.args[0]
    assert media.media == "https://img/x.jpg"
    assert "Title 1" in media.caption


async def test_expired_callback_renders_error(command, context):
    query = make_query("a_select_deadbeef")
    assert await command.handle_callback(make_update(query), context) is True
    text = query.edit_message_text.await_args.args[0]
    assert EXPIRED_TEXT in text


async def test_select_failure_offers_back_to_gallery(command, service, context):
    session_id = service.create_session(7, "q", results(1))
    service.get_info = AsyncMock(side_effect=ScrapeError("down"))
    query = make_query(command.callbacks.encode("select", {"session": session_id}))

    await command.handle_callback(make_update(query), context)
    markup = query.edit_message_text.await_args.kwargs["reply_markup"]
    back = markup.inline_keyboard[0][0].callback_data
    assert command.callbacks.decode(back) == ("back", {"session": session_id})


async def test_episode_then_download_flow(command, service, context):
    info = {
        "id": "x", "title": "X", "source": "api", "has_sub": True, "has_dub": False,
        "episodes": [{"id": "x-ep-1", "number": 1, "title": None}],
    }
    info_key = service.store_info(info)
    service.get_sources = AsyncMock(return_value=[{"url": "https://cdn/1.m3u8", "quality": "1080p"}])

    query = make_query(command.callbacks.encode("episode", {"info": info_key, "episode": "x-ep-1", "session": None}))
    await command.handle_callback(make_update(query), context)
    assert "Episode 1 - X" in query.edit_message_text.await_args.args[0]

    context.application.create_task = MagicMock(side_effect=lambda coro: coro.close())
    query = make_query(command.callbacks.encode("download", {"info": info_key, "episode": "x-ep-1", "kind": "1080p"}))
    await command.handle_callback(make_update(query), context)

    [download] = service.user_downloads(7)
    assert download["source_url"] == "https://cdn/1.m3u8"
    assert download["title"] == "X - Episode 1"
    context.application.create_task.assert_called_once()
    assert "Download Started" in query.edit_message_text.await_args.args[0]


async def test_finish_download_announces_completion(command, service, context):
    download = service.enqueue_download(7, 100, "x-ep-1", "sub", title="X - Episode 1", source_url="https://src")
    await command.finish_download(context.bot, download["id"], delay=0)
    assert download["status"] == "completed"
    kwargs = context.bot.send_message.await_args.kwargs
    assert kwargs["chat_id"] == 100
    assert "Download Completed" in kwargs["text"]


async def test_popular_creates_ranked_list(command, service, context):
    service.get_popular = AsyncMock(return_value=results(12))
    query = make_query("a_popular")
    await command.handle_callback(make_update(query), context)
    text = query.edit_message_text.await_args.args[0]
    assert "Popular Anime" in text
    markup = query.edit_message_text.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].text == "1. Title 0"


def test_sweep_delegates_to_service(command, service, clock):
    service.create_session(7, "q", results(1))
    clock.advance(31 * 60)
    assert command.sweep() == 1


async def test_unexpected_error_renders_error(command, service, context):
    session_id = service.create_session(7, "q", results(1))
    service.get_info = AsyncMock(side_effect=ValueError("invalid literal for int(): '12.5'"))
    query = make_query(command.callbacks.encode("select", {"session": session_id}))

    assert await command.handle_callback(make_update(query), context) is True
    text = query.edit_message_text.await_args.args[0]
    assert EXPIRED_TEXT in text
    markup = query.edit_message_text.await_args.kwargs["reply_markup"]
    assert markup.inline_keyboard[0][0].callback_data == "a_main"


async def test_unknown_action_is_left_unanswered(command, context):
    query = make_query("a_bogus")
    assert await command.handle_callback(make_update(query), context) is False
    query.answer.assert_not_awaited()
