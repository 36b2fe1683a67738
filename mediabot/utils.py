import logging
import logging.handlers
import os
import shutil
import time

from mediabot.config import LOG_FILE, TEMP_DIR, TEMP_MAX_AGE_SECONDS

# Setup logger
logger = logging.getLogger("mediabot")
logger.setLevel(logging.INFO)
formatter = logging.Formatter("[%(asctime)s] %(levelname)s - %(message)s")

if not logger.handlers:
    file_handler = logging.handlers.RotatingFileHandler(
        LOG_FILE, maxBytes=5 * 1024 * 1024, backupCount=2
    )
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)


def cleanup_files(*file_paths):
    for file_path in file_paths:
        if not file_path:
            continue
        try:
            if os.path.isfile(file_path):
                os.remove(file_path)
                logger.info(f"Deleted file: {file_path}")
            elif os.path.isdir(file_path):
                shutil.rmtree(file_path)
                logger.info(f"Deleted directory: {file_path}")
        except OSError as e:
            logger.error(f"Failed to delete {file_path}: {e}")


def clean_temp_files(directory=TEMP_DIR, max_age=TEMP_MAX_AGE_SECONDS, now=None) -> int:
    """Remove files in ``directory`` older than ``max_age`` seconds. Returns the count removed."""
    if not os.path.isdir(directory):
        return 0
    now = now if now is not None else time.time()
    removed = 0
    for name in os.listdir(directory):
        path = os.path.join(directory, name)
        try:
            if os.path.isfile(path) and now - os.path.getmtime(path) > max_age:
                os.remove(path)
                removed += 1
                logger.info(f"Cleaned old temp file: {name}")
        except OSError as e:
            logger.warning(f"Error cleaning temp file {name}: {e}")
    return removed
