from __future__ import annotations

import asyncio
import logging
import time
from typing import AsyncIterator

from ayah_reels.core.config import settings
from ayah_reels.core.store import KeyedStore, build_store
from ayah_reels.models.schemas import TERMINAL_STAGES, ProgressRecord, ProgressStage

logger = logging.getLogger(__name__)

STAGE_PERCENTAGES = {
    ProgressStage.starting: 5,
    ProgressStage.fetching: 10,
    ProgressStage.downloading: 20,
    ProgressStage.processing_audio: 30,
    ProgressStage.rendering: 50,
    ProgressStage.completed: 100,
}


class ProgressTracker:
    """Owns one ProgressRecord per request id.

    A record stays until a poller has seen it in a terminal state. Percentages
    never go backwards.
    """

    def __init__(self, store: KeyedStore | None = None) -> None:
        self.store = store or build_store(settings.progress_store_path)

    def begin(self, request_id: str) -> bool:
        record = ProgressRecord(request_id=request_id, stage=ProgressStage.starting, percentage=0)
        return self.store.claim(
            request_id,
            record.model_dump(mode="json"),
            replaceable=lambda current: bool(current.get("terminal")),
        )

    def release(self, request_id: str) -> None:
        self.store.pop(request_id)

    def get(self, request_id: str) -> ProgressRecord | None:
        payload = self.store.get(request_id)
        return ProgressRecord.model_validate(payload) if payload else None

    def is_active(self, request_id: str) -> bool:
        record = self.get(request_id)
        return record is not None and not record.terminal

    def update(self, request_id: str, stage: ProgressStage, percentage: int | None = None) -> ProgressRecord | None:
        target = STAGE_PERCENTAGES.get(stage, 0) if percentage is None else percentage
        target = max(0, min(100, int(target)))

        def _advance(current: dict | None) -> dict | None:
            if current is None:
                previous = 0
            else:
                if current.get("terminal"):
                    return current
                previous = int(current.get("percentage", 0))
            record = ProgressRecord(
                request_id=request_id,
                stage=stage,
                percentage=max(previous, target),
                terminal=stage in TERMINAL_STAGES,
            )
            return record.model_dump(mode="json")

        payload = self.store.update(request_id, _advance)
        return ProgressRecord.model_validate(payload) if payload else None

    def fail(self, request_id: str, message: str) -> ProgressRecord:
        def _fail(current: dict | None) -> dict:
            percentage = int(current.get("percentage", 0)) if current else 0
            record = ProgressRecord(
                request_id=request_id,
                stage=ProgressStage.failed,
                percentage=percentage,
                terminal=True,
                error_message=message,
            )
            return record.model_dump(mode="json")

        payload = self.store.update(request_id, _fail)
        return ProgressRecord.model_validate(payload)

    async def watch(
        self,
        request_id: str,
        interval: float | None = None,
        idle_timeout: float | None = None,
    ) -> AsyncIterator[ProgressRecord]:
        """Poll the record until it is terminal, yielding each change.

        Cancelling the consumer only stops this loop; the generation itself is
        unaffected.
        """
        interval = settings.poll_interval if interval is None else interval
        idle_timeout = settings.poll_idle_timeout if idle_timeout is None else idle_timeout
        started = time.monotonic()
        seen = False
        last: ProgressRecord | None = None
        while True:
            record = await asyncio.to_thread(self.get, request_id)
            if record is not None:
                seen = True
                if record != last:
                    last = record
                    yield record
                if record.terminal:
                    await asyncio.to_thread(self.store.pop, request_id)
                    logger.debug("Progress for %s consumed at %s", request_id, record.stage.value)
                    return
            elif seen or time.monotonic() - started > idle_timeout:
                return
            await asyncio.sleep(interval)
