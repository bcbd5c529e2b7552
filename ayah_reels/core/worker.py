from concurrent.futures import Future, ThreadPoolExecutor
from threading import Lock
from typing import Callable

from ayah_reels.core.config import settings


class BackgroundWorker:
    def __init__(self, max_workers: int | None = None) -> None:
        self._executor = ThreadPoolExecutor(max_workers=max(1, max_workers or settings.max_workers))
        self._side = ThreadPoolExecutor(max_workers=2, thread_name_prefix="fire-and-forget")
        self._jobs: dict[str, Future] = {}
        self._guard = Lock()

    def submit(self, job_id: str, fn: Callable[[], object]) -> bool:
        with self._guard:
            if job_id in self._jobs and not self._jobs[job_id].done():
                return False
            self._jobs[job_id] = self._executor.submit(fn)
            return True

    def is_running(self, job_id: str) -> bool:
        with self._guard:
            fut = self._jobs.get(job_id)
            return bool(fut and not fut.done())

    def fire(self, fn: Callable[[], object]) -> Future:
        return self._side.submit(fn)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
        self._side.shutdown(wait=wait)


worker = BackgroundWorker()
