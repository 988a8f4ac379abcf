import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, List, Optional, Set

logger = logging.getLogger(__name__)

MarkRead = Callable[[Hashable], Awaitable[Any]]


class ViewportReadTracker:
    """
    Turn visibility signals from a rendered item list into mark-read calls.

    An item is marked read when it leaves the viewport through the top edge
    (scrolled past) or when the user opens it. Leaving through the bottom or
    entering from the bottom never marks. Marks are batched after a short
    debounce window and each item is sent at most once.

    Usage:
        tracker = ViewportReadTracker(lambda article_id: store.mark_read(article_id, user_id))
        tracker.observe(article_id, is_visible=True, top=120)
        tracker.observe(article_id, is_visible=False, top=-40)
        await tracker.close()
    """

    def __init__(self, mark_read: MarkRead, debounce_seconds: float = 0.3):
        self._mark_read = mark_read
        self.debounce_seconds = debounce_seconds
        self._visible: Dict[Hashable, bool] = {}
        self._pending: List[Hashable] = []
        self._sent: Set[Hashable] = set()
        self._flush_task: Optional[asyncio.Task] = None

    def observe(self, item_id: Hashable, is_visible: bool, top: float) -> None:
        """
        Record a visibility change.

        Args:
            item_id: Tracked article id
            is_visible: Whether the item currently intersects the viewport
            top: Item top edge relative to the viewport top (negative = above)
        """
        was_visible = self._visible.get(item_id, False)
        self._visible[item_id] = is_visible

        if was_visible and not is_visible and top < 0:
            self._enqueue(item_id)

    def opened(self, item_id: Hashable) -> None:
        """The user opened the item's full content"""
        self._enqueue(item_id)

    def is_marked(self, item_id: Hashable) -> bool:
        return item_id in self._sent

    def _enqueue(self, item_id: Hashable) -> None:
        if item_id in self._sent or item_id in self._pending:
            return
        self._pending.append(item_id)
        self._schedule_flush()

    def _schedule_flush(self) -> None:
        if self._flush_task is not None and not self._flush_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: caller flushes explicitly
            return
        self._flush_task = loop.create_task(self._flush_later())

    async def _flush_later(self) -> None:
        await asyncio.sleep(self.debounce_seconds)
        await self.flush()

        # Marks queued while the batch was in flight need their own timer
        if self._flush_task is asyncio.current_task():
            self._flush_task = None
        if self._pending:
            self._schedule_flush()

    async def flush(self) -> int:
        """
        Send every pending mark now.

        Returns:
            Number of items successfully marked
        """
        batch, self._pending = self._pending, []
        marked = 0
        for position, item_id in enumerate(batch):
            self._sent.add(item_id)
            try:
                await self._mark_read(item_id)
            except asyncio.CancelledError:
                # Unsent ids go back to the queue
                self._sent.discard(item_id)
                self._pending = batch[position:] + self._pending
                raise
            except Exception as e:
                # Release the id so a later signal can retry it
                self._sent.discard(item_id)
                logger.warning(f"Failed to mark item {item_id} as read: {e}")
            else:
                marked += 1
        return marked

    async def close(self) -> None:
        """Flush pending marks and stop the debounce timer"""
        task, self._flush_task = self._flush_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self.flush()
