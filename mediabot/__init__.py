from mediabot.config import VERSION

__version__ = VERSION
