from typing import Optional

from feedsync.services.feed_parser import FeedItem


def resolve_identity(item: FeedItem) -> Optional[str]:
    """
    Stable identity of a feed item, used as the dedup key across syncs.

    Precedence is guid, then link, then title. The chosen value is only
    stripped of surrounding whitespace so it matches stored identities
    byte for byte. Returns None when the item cannot be tracked.
    """
    for candidate in (item.guid, item.link, item.title):
        if candidate is None:
            continue
        candidate = candidate.strip()
        if candidate:
            return candidate
    return None
