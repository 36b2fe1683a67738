"""
Text and inline keyboards for the anime menus.

Every function returns ``(text, InlineKeyboardMarkup)`` rendered with
legacy Markdown; callback data comes from the ``a`` CallbackRegistry.
"""
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.helpers import escape_markdown

from mediabot.config import DESCRIPTION_LIMIT, EPISODES_PER_PAGE, EPISODES_PER_ROW, POPULAR_LIMIT

MAIN = "a_main"
SEARCH = "a_search"
CANCEL = "a_cancel"


def md(value) -> str:
    return escape_markdown(str(value), version=1)


def main_menu():
    text = (
        "🎌 *Anime Search & Download*\n\n"
        "Welcome to the anime world! Here's what you can do:\n\n"
        "🔍 Search for anime by name\n"
        "📺 Get detailed anime information with images\n"
        "⬇️ Download episodes with sub/dub options\n"
        "📋 Browse episode lists with image gallery\n\n"
        "*How to use:*\n"
        "• Use the search button below\n"
        "• Or type: `/anime [anime name]`\n\n"
        "*Example:* `/anime dandadan`"
    )
    keyboard = [
        [InlineKeyboardButton("🔍 Search Anime", callback_data=SEARCH)],
        [InlineKeyboardButton("📊 Popular Anime", callback_data="a_popular")],
        [InlineKeyboardButton("📥 Download Queue", callback_data="a_queue")],
        [InlineKeyboardButton("🏠 Back to Main Menu", callback_data="show_commands")],
    ]
    return text, InlineKeyboardMarkup(keyboard)


def search_prompt():
    text = (
        "🔍 *Search for Anime*\n\n"
        "Please enter the name of the anime you want to search for:\n\n"
        "*Examples:*\n"
        "• Dandadan\n"
        "• Demon Slayer\n"
        "• Attack on Titan\n"
        "• One Piece\n\n"
        "Just type the anime name and I'll find it for you!"
    )
    return text, InlineKeyboardMarkup([[InlineKeyboardButton("❌ Cancel", callback_data=CANCEL)]])


def no_results(query):
    text = (
        f"❌ No anime found for \"{md(query)}\"\n\n"
        "Try searching with a different name or check the spelling."
    )
    keyboard = [[
        InlineKeyboardButton("🔍 Search Again", callback_data=SEARCH),
        InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
    ]]
    return text, InlineKeyboardMarkup(keyboard)


def gallery_caption(session) -> str:
    anime = session["results"][session["current_index"]]
    caption = f"🎌 *{md(anime['title'])}*\n"
    if anime.get("japanese_title"):
        caption += f"🈲 *Japanese:* {md(anime['japanese_title'])}\n"

    caption += "\n📊 *Information:*\n"
    if anime.get("type"):
        caption += f"🎭 Type: {md(anime['type'])}\n"
    if anime.get("status"):
        caption += f"📡 Status: {md(anime['status'])}\n"
    if anime.get("episodes"):
        caption += f"📺 Episodes: {anime['episodes']}\n"
    if anime.get("season"):
        caption += f"🗓 Season: {md(anime['season'])}\n"

    availability = []
    if anime.get("sub"):
        availability.append(f"🎌 SUB ({anime['sub']})")
    if anime.get("dub"):
        availability.append(f"🎤 DUB ({anime['dub']})")
    if availability:
        caption += f"🌐 Available: {', '.join(availability)}\n"
    if anime.get("genres"):
        caption += f"🏷 Genres: {md(', '.join(anime['genres']))}\n"

    description = anime.get("description")
    if description:
        if len(description) > DESCRIPTION_LIMIT:
            description = description[:DESCRIPTION_LIMIT] + "..."
        caption += f"\n📖 *Description:*\n{md(description)}\n"

    caption += f"\n📋 *Gallery:* {session['current_index'] + 1} of {len(session['results'])}"
    if session.get("query"):
        caption += f"\n🔍 *Search:* \"{md(session['query'])}\""
    return caption


def gallery(session, session_id, cb):
    index = session["current_index"]
    total = len(session["results"])
    keyboard = []

    nav = []
    if index > 0:
        nav.append(InlineKeyboardButton("⬅️ Back", callback_data=cb.encode("gallery", {"session": session_id, "direction": "prev"})))
    if index < total - 1:
        nav.append(InlineKeyboardButton("Next ➡️", callback_data=cb.encode("gallery", {"session": session_id, "direction": "next"})))
    if nav:
        keyboard.append(nav)

    keyboard.append([
        InlineKeyboardButton("✅ Select", callback_data=cb.encode("select", {"session": session_id})),
        InlineKeyboardButton("❌ Cancel", callback_data=CANCEL),
    ])
    if session.get("has_next_page"):
        keyboard.append([
            InlineKeyboardButton(
                f"➡️ More results (page {session['current_page'] + 1})",
                callback_data=cb.encode("page", {"session": session_id}),
            )
        ])
    return gallery_caption(session), InlineKeyboardMarkup(keyboard)


def anime_details(info, info_key, session_id, cb):
    text = f"🎌 *{md(info['title'])}*\n\n"
    if info.get("type"):
        text += f"🎭 Type: {md(info['type'])}\n"
    if info.get("status"):
        text += f"📡 Status: {md(info['status'])}\n"
    text += f"📺 Episodes: {info.get('total_episodes') or len(info['episodes'])}\n"
    audio = [name for name, flag in (("SUB", info.get("has_sub")), ("DUB", info.get("has_dub"))) if flag]
    if audio:
        text += f"🌐 Audio: {', '.join(audio)}\n"
    if info.get("genres"):
        text += f"🏷 Genres: {md(', '.join(info['genres']))}\n"
    description = info.get("description")
    if description:
        if len(description) > DESCRIPTION_LIMIT:
            description = description[:DESCRIPTION_LIMIT] + "..."
        text += f"\n📖 {md(description)}\n"

    keyboard = []
    if info["episodes"]:
        keyboard.append([InlineKeyboardButton(
            "📺 Episodes", callback_data=cb.encode("episodes", {"info": info_key, "page": 0, "session": session_id})
        )])
    else:
        text += "\n❌ No episodes are available for this anime yet."
    keyboard.append([
        InlineKeyboardButton("⬅️ Back to Gallery", callback_data=cb.encode("back", {"session": session_id})),
        InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
    ])
    return text, InlineKeyboardMarkup(keyboard)


def episode_list(info, info_key, page, session_id, cb):
    episodes = info["episodes"]
    pages = max(1, -(-len(episodes) // EPISODES_PER_PAGE))
    page = max(0, min(page, pages - 1))
    shown = episodes[page * EPISODES_PER_PAGE:(page + 1) * EPISODES_PER_PAGE]

    text = (
        "📺 *Episodes List*\n"
        f"🎌 *Anime:* {md(info['title'])}\n"
        f"📊 *Total Episodes:* {len(episodes)}\n"
    )
    if pages > 1:
        text += f"📄 Page {page + 1} of {pages}\n"

    keyboard = []
    for i in range(0, len(shown), EPISODES_PER_ROW):
        keyboard.append([
            InlineKeyboardButton(
                f"Ep {ep['number']}",
                callback_data=cb.encode("episode", {"info": info_key, "episode": ep["id"], "session": session_id}),
            )
            for ep in shown[i:i + EPISODES_PER_ROW]
        ])

    nav = []
    if page > 0:
        nav.append(InlineKeyboardButton(
            "⬅️ Previous", callback_data=cb.encode("episodes", {"info": info_key, "page": page - 1, "session": session_id})
        ))
    if page < pages - 1:
        nav.append(InlineKeyboardButton(
            "➡️ More Episodes", callback_data=cb.encode("episodes", {"info": info_key, "page": page + 1, "session": session_id})
        ))
    if nav:
        keyboard.append(nav)

    keyboard.append([
        InlineKeyboardButton("🔙 Back to Gallery", callback_data=cb.encode("back", {"session": session_id})),
        InlineKeyboardButton("❌ Cancel", callback_data=CANCEL),
    ])
    return text, InlineKeyboardMarkup(keyboard)


def episode_options(info, episode, sources, info_key, session_id, cb):
    text = (
        f"📺 *Episode {episode['number']} - {md(info['title'])}*\n\n"
        f"🎬 Episode ID: {md(episode['id'])}\n"
        f"🔗 Available Sources: {len(sources)}\n\n"
    )
    back_row = [
        InlineKeyboardButton(
            "⬅️ Back to Episodes", callback_data=cb.encode("episodes", {"info": info_key, "page": 0, "session": session_id})
        ),
        InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
    ]
    if not sources:
        text += "❌ No download sources available for this episode."
        return text, InlineKeyboardMarkup([back_row])

    text += "📊 *Available Options:*"

    def download(kind):
        return cb.encode("download", {"info": info_key, "episode": episode["id"], "kind": kind})

    keyboard = []
    if info.get("has_sub"):
        keyboard.append([InlineKeyboardButton("🎌 Download SUB", callback_data=download("sub"))])
    if info.get("has_dub"):
        keyboard.append([InlineKeyboardButton("🎤 Download DUB", callback_data=download("dub"))])

    qualities = []
    for source in sources:
        quality = source.get("quality")
        if quality and quality not in qualities:
            qualities.append(quality)
    for quality in qualities[:3]:
        keyboard.append([InlineKeyboardButton(f"📹 {quality}", callback_data=download(quality))])

    keyboard.append([InlineKeyboardButton("⬇️ Quick Download (Best Quality)", callback_data=download("best"))])
    keyboard.append(back_row)
    return text, InlineKeyboardMarkup(keyboard)


def download_started(download):
    text = (
        "⬇️ *Download Started*\n\n"
        f"🎬 Episode ID: {md(download['episode_id'])}\n"
        f"🎌 Type: {md(download['kind'].upper())}\n"
        "📊 Status: Added to queue\n\n"
        "Episodes are too large for Telegram uploads, so you will get the source link when it is ready.\n\n"
        f"💡 *Download ID:* `{download['id']}`"
    )
    keyboard = [
        [
            InlineKeyboardButton("📥 View Queue", callback_data="a_queue"),
            InlineKeyboardButton("⬇️ Download Another", callback_data=SEARCH),
        ],
        [InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN)],
    ]
    return text, InlineKeyboardMarkup(keyboard)


def download_completed(download):
    text = "✅ *Download Completed!*\n\n"
    if download.get("title"):
        text += f"🎌 Anime: {md(download['title'])}\n"
    text += (
        f"🎬 Episode: {md(download['episode_id'])}\n"
        f"🎌 Type: {md(download['kind'].upper())}\n"
    )
    if download.get("source_url"):
        text += f"\n🔗 [Open source]({download['source_url']})"
    keyboard = [[
        InlineKeyboardButton("⬇️ Download More", callback_data=SEARCH),
        InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
    ]]
    return text, InlineKeyboardMarkup(keyboard)


def download_queue(downloads):
    text = "📥 *Download Queue*\n\n"
    if not downloads:
        text += "Your queue is empty. Search for an anime to start a download."
    for d in downloads:
        icon = "✅" if d["status"] == "completed" else "⏳"
        label = md(d["title"]) if d.get("title") else md(d["episode_id"])
        text += f"{icon} {label} ({md(d['kind'].upper())}) - {d['status']}\n"
    keyboard = [
        [InlineKeyboardButton("🔄 Refresh", callback_data="a_queue")],
        [
            InlineKeyboardButton("🔍 Search Anime", callback_data=SEARCH),
            InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
        ],
    ]
    return text, InlineKeyboardMarkup(keyboard)


def popular_list(session, session_id, cb):
    results = session["results"][:POPULAR_LIMIT]
    text = "📊 *Popular Anime*\n\n🔥 Top trending anime right now:\n"
    keyboard = [
        [InlineKeyboardButton(
            f"{rank}. {anime['title']}",
            callback_data=cb.encode("result", {"session": session_id, "index": rank - 1}),
        )]
        for rank, anime in enumerate(results, start=1)
    ]
    if not results:
        text += "\n❌ No popular anime data available."
    keyboard.append([
        InlineKeyboardButton("🔍 Search Anime", callback_data=SEARCH),
        InlineKeyboardButton("🏠 Main Menu", callback_data=MAIN),
    ])
    return text, InlineKeyboardMarkup(keyboard)


def error(message, back_callback=MAIN):
    text = f"❌ *Error*\n\n{md(message)}\n\nPlease try again or contact support if the problem persists."
    keyboard = [[InlineKeyboardButton("🏠 Back to Main Menu", callback_data=back_callback)]]
    return text, InlineKeyboardMarkup(keyboard)
