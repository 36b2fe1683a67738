from mediabot.anime.sites.animepahe import AnimePaheSite
from mediabot.anime.sites.base import AnimeSite, make_result
from mediabot.anime.sites.nineanime import NineAnimeSite

SITE_CLASSES = (AnimePaheSite, NineAnimeSite)

__all__ = ["AnimePaheSite", "AnimeSite", "NineAnimeSite", "SITE_CLASSES", "make_result"]
