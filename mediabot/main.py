import asyncio

from mediabot.editor import check_ffmpeg
from mediabot.manager import BotManager
from mediabot.utils import clean_temp_files, logger


def main():
    if not check_ffmpeg():
        logger.warning("Watermarking will fail until FFmpeg is installed.")
    clean_temp_files()

    manager = BotManager()
    try:
        asyncio.run(manager.run())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user.")


if __name__ == "__main__":
    main()
