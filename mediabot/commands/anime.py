import asyncio
import logging

from telegram import InlineKeyboardButton, InputMediaPhoto
from telegram.constants import ParseMode
from telegram.error import TelegramError
from telegram.ext import CommandHandler

from mediabot.anime import ui
from mediabot.anime.service import AnimeService
from mediabot.callbacks import CallbackRegistry
from mediabot.commands.base import Command
from mediabot.config import POPULAR_LIMIT, SIMULATED_DOWNLOAD_SECONDS
from mediabot.errors import ScrapeError, SessionExpired

logger = logging.getLogger("mediabot.commands.anime")

EXPIRED_TEXT = "Session expired or error occurred. Please try again."


class AnimeCommand(Command):
    name = "anime"

    def __init__(self, manager, service=None):
        super().__init__(manager)
        self.service = service or AnimeService()
        self.callbacks = CallbackRegistry("a", self.service.cache)

    def main_button(self):
        return InlineKeyboardButton("🎌 Anime Search & Download", callback_data="a_main")

    def handlers(self):
        return [CommandHandler("anime", self.anime_command)]

    def sweep(self) -> int:
        return self.service.sweep()

    async def show_menu(self, query, context):
        await self.render(query, context, *ui.main_menu())

    # --- entry points ---

    async def anime_command(self, update, context):
        query = " ".join(context.args or []).strip()
        if not query:
            text, markup = ui.main_menu()
            await update.message.reply_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)
            return
        await self.search(context, update.effective_chat.id, update.effective_user.id, query)

    async def handle_text(self, update, context, state):
        if state.get("operation") == "search" and state.get("step") == "waiting_query":
            self.manager.user_states.clear(update.effective_user.id)
            query = (update.message.text or "").strip()
            if query:
                await self.search(context, update.effective_chat.id, update.effective_user.id, query)

    async def handle_callback(self, update, context) -> bool:
        query = update.callback_query
        if not self.callbacks.matches(query.data):
            return False

        handler = getattr(self, f"on_{self.callbacks.action(query.data)}", None)
        if handler is None:
            return False

        await query.answer()
        try:
            _, payload = self.callbacks.decode(query.data)
            await handler(query, context, payload)
        except SessionExpired:
            logger.info(f"Expired anime callback: {query.data}")
            await self.render(query, context, *ui.error(EXPIRED_TEXT))
        except (ScrapeError, TelegramError) as e:
            logger.error(f"Error in anime callback {query.data}: {e}")
            await self.render(query, context, *ui.error(EXPIRED_TEXT))
        except Exception as e:
            logger.error(f"Unexpected error in anime callback {query.data}: {e}", exc_info=True)
            await self.render(query, context, *ui.error(EXPIRED_TEXT))
        return True

    # --- search and gallery ---

    async def search(self, context, chat_id, user_id, query, page=1):
        loading = await context.bot.send_message(chat_id=chat_id, text=f'🔍 Searching for "{query}"...')
        try:
            results, total_pages, has_next = await self.service.search(query, page)
        except ScrapeError as e:
            logger.error(f"Anime search failed for '{query}': {e}")
            text, _ = ui.error("Failed to search anime. Please try again later.")
            await loading.edit_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=ui.no_results(query)[1])
            return

        if not results:
            text, markup = ui.no_results(query)
            await loading.edit_text(text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)
            return

        session_id = self.service.create_session(
            user_id, query, results, page=page, total_pages=total_pages, has_next_page=has_next
        )
        await loading.delete()
        await self.send_gallery(context, chat_id, session_id)

    async def send_gallery(self, context, chat_id, session_id):
        session = self.service.get_session(session_id)
        text, markup = ui.gallery(session, session_id, self.callbacks)
        image = self.service.current(session).get("image")
        if image:
            try:
                await context.bot.send_photo(
                    chat_id=chat_id, photo=image, caption=text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup
                )
                return
            except TelegramError as e:
                logger.warning(f"Gallery photo failed, sending text instead: {e}")
        await context.bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup)

    async def show_gallery(self, query, context, session_id):
        session = self.service.get_session(session_id)
        text, markup = ui.gallery(session, session_id, self.callbacks)
        image = self.service.current(session).get("image")
        message = query.message

        if image and message.photo:
            try:
                await query.edit_message_media(
                    InputMediaPhoto(image, caption=text, parse_mode=ParseMode.MARKDOWN), reply_markup=markup
                )
                return
            except TelegramError as e:
                logger.warning(f"Gallery media edit failed: {e}")
        elif image:
            await message.delete()
            await self.send_gallery(context, message.chat_id, session_id)
            return
        await self.render(query, context, text, markup)

    async def on_main(self, query, context, payload):
        await self.show_menu(query, context)

    async def on_cancel(self, query, context, payload):
        self.manager.user_states.clear(query.from_user.id)
        await self.show_menu(query, context)

    async def on_search(self, query, context, payload):
        self.manager.user_states.set(query.from_user.id, {
            "command": self.name,
            "operation": "search",
            "step": "waiting_query",
        })
        await self.render(query, context, *ui.search_prompt())

    async def on_gallery(self, query, context, payload):
        self.service.move(payload["session"], payload.get("direction"))
        await self.show_gallery(query, context, payload["session"])

    async def on_back(self, query, context, payload):
        await self.show_gallery(query, context, payload["session"])

    async def on_result(self, query, context, payload):
        session = self.service.get_session(payload["session"])
        session["current_index"] = max(0, min(payload["index"], len(session["results"]) - 1))
        await self.show_gallery(query, context, payload["session"])

    async def on_page(self, query, context, payload):
        session = self.service.get_session(payload["session"])
        if not session["has_next_page"]:
            return
        await self.search(
            context, query.message.chat_id, query.from_user.id, session["query"], page=session["current_page"] + 1
        )

    async def on_popular(self, query, context, payload):
        await self.render(query, context, "📊 Loading popular anime...", None)
        try:
            results = await self.service.get_popular()
        except ScrapeError as e:
            logger.error(f"Popular anime failed: {e}")
            await self.render(query, context, *ui.error("Failed to load popular anime. Please try again."))
            return
        session_id = self.service.create_session(query.from_user.id, None, results[:POPULAR_LIMIT])
        await self.render(query, context, *ui.popular_list(self.service.get_session(session_id), session_id, self.callbacks))

    async def on_queue(self, query, context, payload):
        await self.render(query, context, *ui.download_queue(self.service.user_downloads(query.from_user.id)))

    # --- details, episodes and downloads ---

    async def on_select(self, query, context, payload):
        session_id = payload["session"]
        anime = self.service.current(self.service.get_session(session_id))
        await self.render(query, context, "📱 Loading anime details...", None)
        try:
            info = await self.service.get_info(anime)
        except ScrapeError as e:
            logger.error(f"Anime info failed for {anime.get('id')}: {e}")
            await self.render(query, context, *ui.error(
                "Failed to load anime information. Please try again.",
                back_callback=self.callbacks.encode("back", {"session": session_id}),
            ))
            return
        info_key = self.service.store_info(info)
        await self.render(query, context, *ui.anime_details(info, info_key, session_id, self.callbacks))

    async def on_episodes(self, query, context, payload):
        info = self.service.get_cached_info(payload["info"])
        await self.render(query, context, *ui.episode_list(
            info, payload["info"], payload.get("page", 0), payload.get("session"), self.callbacks
        ))

    def _episode(self, info, episode_id):
        for episode in info["episodes"]:
            if episode["id"] == episode_id:
                return episode
        raise ScrapeError(f"Episode {episode_id} not found")

    async def on_episode(self, query, context, payload):
        info_key = payload["info"]
        info = self.service.get_cached_info(info_key)
        episode = self._episode(info, payload["episode"])
        await self.render(query, context, "⚙️ Loading episode options...", None)
        try:
            sources = await self.service.get_sources(info, episode["id"])
        except ScrapeError as e:
            logger.error(f"Episode sources failed for {episode['id']}: {e}")
            await self.render(query, context, *ui.error(
                "Failed to load episode sources. Please try again.",
                back_callback=self.callbacks.encode("episodes", {"info": info_key, "page": 0, "session": payload.get("session")}),
            ))
            return
        info.setdefault("sources", {})[episode["id"]] = sources
        await self.render(query, context, *ui.episode_options(
            info, episode, sources, info_key, payload.get("session"), self.callbacks
        ))

    async def on_download(self, query, context, payload):
        info = self.service.get_cached_info(payload["info"])
        episode = self._episode(info, payload["episode"])
        kind = payload["kind"]
        sources = info.get("sources", {}).get(episode["id"]) or []
        source = next((s for s in sources if s.get("quality") == kind), sources[0] if sources else None)

        download = self.service.enqueue_download(
            query.from_user.id,
            query.message.chat_id,
            episode["id"],
            kind,
            title=f"{info['title']} - Episode {episode['number']}",
            source_url=source.get("url") if source else None,
        )
        await self.render(query, context, *ui.download_started(download))
        context.application.create_task(self.finish_download(context.bot, download["id"]))

    async def finish_download(self, bot, download_id, delay=SIMULATED_DOWNLOAD_SECONDS):
        await asyncio.sleep(delay)
        download = self.service.complete_download(download_id)
        if download is None:
            return
        text, markup = ui.download_completed(download)
        try:
            await bot.send_message(
                chat_id=download["chat_id"], text=text, parse_mode=ParseMode.MARKDOWN, reply_markup=markup
            )
        except TelegramError as e:
            logger.error(f"Failed to announce download {download_id}: {e}")
