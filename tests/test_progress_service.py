import asyncio
import threading
import time

from filelock import FileLock

from ayah_reels.core.store import JsonFileStore, MemoryStore
from ayah_reels.models.schemas import ProgressStage
from ayah_reels.services.progress_service import ProgressTracker


def _collect(tracker, request_id, **kwargs):
    async def run():
        return [record async for record in tracker.watch(request_id, **kwargs)]

    return asyncio.run(run())


def test_begin_is_single_flight():
    tracker = ProgressTracker(MemoryStore())

    assert tracker.begin("req-1") is True
    assert tracker.begin("req-1") is False
    assert tracker.is_active("req-1")


def test_begin_allowed_again_after_terminal_state():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")
    tracker.fail("req-1", "boom")

    assert tracker.begin("req-1") is True
    record = tracker.get("req-1")
    assert record.stage == ProgressStage.starting
    assert record.error_message is None


def test_percentages_never_decrease():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")
    tracker.update("req-1", ProgressStage.rendering, 80)

    record = tracker.update("req-1", ProgressStage.rendering, 75)
    assert record.percentage == 80

    record = tracker.update("req-1", ProgressStage.completed)
    assert record.percentage == 100
    assert record.terminal


def test_terminal_record_is_not_overwritten():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")
    tracker.update("req-1", ProgressStage.completed)

    tracker.update("req-1", ProgressStage.rendering, 90)
    assert tracker.get("req-1").stage == ProgressStage.completed


def test_failure_keeps_last_percentage():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")
    tracker.update("req-1", ProgressStage.downloading)

    record = tracker.fail("req-1", "Upstream error")
    assert record.percentage == 20
    assert record.terminal
    assert record.event() == {"percentage": 20, "error": "Upstream error"}


def test_watch_stops_on_terminal_and_removes_record():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")
    tracker.update("req-1", ProgressStage.completed)

    records = _collect(tracker, "req-1", interval=0.01)

    assert [r.event() for r in records] == [{"percentage": 100, "status": "completed"}]
    assert tracker.get("req-1") is None


def test_watch_follows_a_running_generation():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")

    async def run():
        async def advance():
            for stage in (ProgressStage.fetching, ProgressStage.downloading, ProgressStage.rendering):
                await asyncio.sleep(0.03)
                tracker.update("req-1", stage)
            await asyncio.sleep(0.03)
            tracker.fail("req-1", "render failed")

        task = asyncio.create_task(advance())
        seen = [record async for record in tracker.watch("req-1", interval=0.005)]
        await task
        return seen

    seen = asyncio.run(run())
    percentages = [r.percentage for r in seen]
    assert percentages == sorted(percentages)
    assert seen[-1].error_message == "render failed"
    assert tracker.get("req-1") is None


def test_watch_gives_up_on_unknown_request():
    tracker = ProgressTracker(MemoryStore())
    assert _collect(tracker, "missing", interval=0.01, idle_timeout=0.05) == []


def test_cancelled_watcher_leaves_record_in_place():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")

    async def run():
        async def consume():
            async for _ in tracker.watch("req-1", interval=0.01):
                pass

        task = asyncio.create_task(consume())
        await asyncio.sleep(0.05)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    asyncio.run(run())
    assert tracker.is_active("req-1")


def test_json_file_store_is_interchangeable(tmp_path):
    store = JsonFileStore(tmp_path / "state" / "progress.json")
    tracker = ProgressTracker(store)

    assert tracker.begin("req-1") is True
    assert tracker.begin("req-1") is False
    tracker.update("req-1", ProgressStage.rendering, 60)

    reopened = ProgressTracker(JsonFileStore(tmp_path / "state" / "progress.json"))
    assert reopened.get("req-1").percentage == 60
    assert store.pop("req-1")["stage"] == "rendering"
    assert reopened.get("req-1") is None


def test_release_frees_the_id():
    tracker = ProgressTracker(MemoryStore())
    tracker.begin("req-1")

    tracker.release("req-1")

    assert tracker.get("req-1") is None
    assert tracker.begin("req-1") is True


def test_watch_keeps_event_loop_responsive_while_file_store_is_locked(tmp_path):
    path = tmp_path / "progress.json"
    tracker = ProgressTracker(JsonFileStore(path))
    tracker.begin("req-1")
    tracker.update("req-1", ProgressStage.completed)
    held = threading.Event()

    def hold_lock():
        with FileLock(str(tmp_path / "progress.json.lock")):
            held.set()
            time.sleep(0.3)

    holder = threading.Thread(target=hold_lock)
    holder.start()
    held.wait()

    async def run():
        ticks = 0
        done = asyncio.Event()

        async def ticker():
            nonlocal ticks
            while not done.is_set():
                ticks += 1
                await asyncio.sleep(0.01)

        async def consume():
            records = [record async for record in tracker.watch("req-1", interval=0.01, idle_timeout=2.0)]
            done.set()
            return records

        records, _ = await asyncio.gather(consume(), ticker())
        return records, ticks

    records, ticks = asyncio.run(run())
    holder.join()

    assert [r.stage for r in records] == [ProgressStage.completed]
    assert ticks >= 10
