"""Tests for ViewportReadTracker."""

import asyncio

import pytest

from feedsync.services.read_tracker import ViewportReadTracker


class Recorder:
    def __init__(self, fail_for=()):
        self.marked = []
        self.fail_for = set(fail_for)

    async def __call__(self, item_id):
        if item_id in self.fail_for:
            self.fail_for.discard(item_id)
            raise RuntimeError("backend unavailable")
        self.marked.append(item_id)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def tracker(recorder) -> ViewportReadTracker:
    return ViewportReadTracker(recorder, debounce_seconds=0.01)


async def test_leaving_through_top_marks_read(tracker, recorder):
    tracker.observe("a", is_visible=True, top=100)
    tracker.observe("a", is_visible=False, top=-50)
    await tracker.close()

    assert recorder.marked == ["a"]
    assert tracker.is_marked("a")


async def test_leaving_through_bottom_does_not_mark(tracker, recorder):
    tracker.observe("a", is_visible=True, top=100)
    tracker.observe("a", is_visible=False, top=900)
    await tracker.close()

    assert recorder.marked == []


async def test_entering_never_marks(tracker, recorder):
    tracker.observe("a", is_visible=True, top=-10)
    tracker.observe("b", is_visible=False, top=-300)
    await tracker.close()

    assert recorder.marked == []


async def test_opening_marks_read(tracker, recorder):
    tracker.opened("a")
    await tracker.close()

    assert recorder.marked == ["a"]


async def test_each_item_is_sent_once(tracker, recorder):
    tracker.observe("a", is_visible=True, top=10)
    tracker.observe("a", is_visible=False, top=-10)
    tracker.opened("a")
    await tracker.flush()
    tracker.observe("a", is_visible=True, top=-5)
    tracker.observe("a", is_visible=False, top=-20)
    await tracker.close()

    assert recorder.marked == ["a"]


async def test_marks_are_debounced_into_one_batch(tracker, recorder):
    for item_id in ("a", "b", "c"):
        tracker.observe(item_id, is_visible=True, top=10)
        tracker.observe(item_id, is_visible=False, top=-10)

    assert recorder.marked == []
    await asyncio.sleep(0.05)

    assert recorder.marked == ["a", "b", "c"]


async def test_failed_mark_can_be_retried():
    recorder = Recorder(fail_for={"a"})
    tracker = ViewportReadTracker(recorder, debounce_seconds=0.01)

    tracker.opened("a")
    assert await tracker.flush() == 0
    assert not tracker.is_marked("a")

    tracker.opened("a")
    assert await tracker.flush() == 1
    assert recorder.marked == ["a"]
    await tracker.close()


def test_without_running_loop_marks_wait_for_flush(recorder):
    tracker = ViewportReadTracker(recorder)

    tracker.opened("a")

    assert recorder.marked == []
    assert asyncio.run(tracker.flush()) == 1
    assert recorder.marked == ["a"]


async def test_mark_queued_during_flush_is_sent():
    marked = []

    async def slow_mark_read(item_id):
        await asyncio.sleep(0.2)
        marked.append(item_id)

    tracker = ViewportReadTracker(slow_mark_read, debounce_seconds=0.05)

    tracker.opened("a")
    await asyncio.sleep(0.1)
    tracker.opened("b")
    await asyncio.sleep(1.0)

    assert marked == ["a", "b"]
    assert tracker.is_marked("b")
    await tracker.close()
