from .folder import Folder
from .feed import Feed
from .tracked_article import TrackedArticle

__all__ = ["Folder", "Feed", "TrackedArticle"]
