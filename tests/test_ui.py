import pytest

from mediabot.anime import ui
from mediabot.anime.sites import make_result
from mediabot.callbacks import CallbackRegistry
from mediabot.state import TTLStore


@pytest.fixture
def cb(clock):
    return CallbackRegistry("a", TTLStore(600, clock))


def buttons(markup):
    return [button for row in markup.inline_keyboard for button in row]


def callbacks(markup):
    return [button.callback_data for button in buttons(markup)]


def make_session(count, index=0, has_next=False):
    results = [
        make_result("api", id=str(i), title=f"Show_{i}", type="TV", genres=["Action"], description="d" * 300)
        for i in range(count)
    ]
    return {
        "query": "show", "results": results, "current_index": index,
        "current_page": 1, "total_pages": 2, "has_next_page": has_next,
    }


def test_main_menu_buttons():
    _, markup = ui.main_menu()
    assert callbacks(markup) == ["a_search", "a_popular", "a_queue", "show_commands"]


def test_gallery_caption_escapes_and_truncates():
    caption = ui.gallery_caption(make_session(3, index=1))
    assert "Show\\_1" in caption
    assert "d" * 200 + "..." in caption
    assert "d" * 201 not in caption
    assert "*Gallery:* 2 of 3" in caption


def test_gallery_navigation(cb):
    _, first = ui.gallery(make_session(3, index=0), "sid", cb)
    labels = [b.text for b in buttons(first)]
    assert "Next ➡️" in labels and "⬅️ Back" not in labels

    _, middle = ui.gallery(make_session(3, index=1, has_next=True), "sid", cb)
    actions = [cb.decode(data) for data in callbacks(middle) if data != "a_cancel"]
    assert ("gallery", {"session": "sid", "direction": "prev"}) in actions
    assert ("gallery", {"session": "sid", "direction": "next"}) in actions
    assert ("page", {"session": "sid"}) in actions
    assert all(len(data.encode()) <= 64 for data in callbacks(middle))


def test_episode_list_pages(cb):
    info = {"title": "X", "episodes": [{"id": f"e{i}", "number": i} for i in range(1, 46)]}
    text, markup = ui.episode_list(info, "info1", 1, "sid", cb)
    assert "Page 2 of 3" in text
    episode_rows = [row for row in markup.inline_keyboard if row[0].text.startswith("Ep ")]
    assert [len(row) for row in episode_rows] == [5, 5, 5, 5]
    assert episode_rows[0][0].text == "Ep 21"
    nav = [cb.decode(b.callback_data) for b in buttons(markup) if b.text in ("⬅️ Previous", "➡️ More Episodes")]
    assert [payload["page"] for _, payload in nav] == [0, 2]


def test_episode_options_offers_audio_and_qualities(cb):
    info = {"title": "X", "has_sub": True, "has_dub": True}
    sources = [{"url": "u", "quality": q} for q in ("1080p", "720p", "720p", "480p", "360p")]
    text, markup = ui.episode_options(info, {"id": "e1", "number": 1}, sources, "info1", "sid", cb)
    kinds = [
        cb.decode(b.callback_data)[1]["kind"]
        for b in buttons(markup)
        if b.callback_data.startswith("a_download_")
    ]
    assert kinds == ["sub", "dub", "1080p", "720p", "480p", "best"]
    assert "Available Sources: 5" in text


def test_episode_options_without_sources(cb):
    text, markup = ui.episode_options({"title": "X"}, {"id": "e1", "number": 1}, [], "info1", "sid", cb)
    assert "No download sources" in text
    assert not any(data.startswith("a_download_") for data in callbacks(markup))


def test_download_messages():
    download = {"id": "7_1", "episode_id": "e1", "kind": "sub", "title": "X - Episode 1",
                "status": "completed", "source_url": "https://src/e1"}
    assert "Download ID:* `7_1`" in ui.download_started(download)[0]
    assert "[Open source](https://src/e1)" in ui.download_completed(download)[0]
    queue_text, _ = ui.download_queue([download])
    assert "✅ X - Episode 1 (SUB) - completed" in queue_text
    assert "queue is empty" in ui.download_queue([])[0]


def test_popular_list_limits_to_ten(cb):
    session = make_session(15)
    _, markup = ui.popular_list(session, "sid", cb)
    ranked = [b for b in buttons(markup) if b.callback_data.startswith("a_result_")]
    assert len(ranked) == 10
    assert cb.decode(ranked[3].callback_data) == ("result", {"session": "sid", "index": 3})


def test_error_back_button():
    _, markup = ui.error("Oops")
    assert callbacks(markup) == ["a_main"]
    _, markup = ui.error("Oops", back_callback="a_back_k")
    assert callbacks(markup) == ["a_back_k"]
