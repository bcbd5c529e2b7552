from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from pydantic import ValidationError

from ayah_reels.core.config import settings
from ayah_reels.core.errors import InputValidationError
from ayah_reels.core.storage import ensure_dir, remove_file, remove_tree
from ayah_reels.core.worker import BackgroundWorker, worker
from ayah_reels.models.schemas import (
    CanvasSize,
    GenerationRequest,
    GenerationResult,
    ProgressStage,
    PushSubscription,
    SubtitleStyle,
    Verse,
)
from ayah_reels.services.asset_service import AssetFetcher
from ayah_reels.services.notification_service import PushNotifier
from ayah_reels.services.probe_service import DurationProber
from ayah_reels.services.progress_service import ProgressTracker
from ayah_reels.services.render_service import CompositionPlanner
from ayah_reels.services.subtitle_service import SubtitleRenderer
from ayah_reels.services.timeline_service import build_timeline, total_duration
from ayah_reels.services.verse_service import VerseResolver

logger = logging.getLogger(__name__)

VERSE_PROGRESS_START = 30
VERSE_PROGRESS_SPAN = 19


class GenerationOrchestrator:
    def __init__(
        self,
        *,
        resolver: VerseResolver | None = None,
        fetcher: AssetFetcher | None = None,
        prober: DurationProber | None = None,
        subtitles: SubtitleRenderer | None = None,
        planner: CompositionPlanner | None = None,
        progress: ProgressTracker | None = None,
        notifier: PushNotifier | None = None,
        background: BackgroundWorker | None = None,
    ) -> None:
        self.resolver = resolver or VerseResolver()
        self.fetcher = fetcher or AssetFetcher()
        self.prober = prober or DurationProber()
        self.subtitles = subtitles or SubtitleRenderer()
        self.planner = planner or CompositionPlanner()
        self.progress = progress or ProgressTracker()
        self.notifier = notifier or PushNotifier()
        self.worker = background or worker
        self._cleanups: dict[str, threading.Timer] = {}
        self._cleanup_guard = threading.Lock()

    @staticmethod
    def coerce(payload: GenerationRequest | dict) -> GenerationRequest:
        if isinstance(payload, GenerationRequest):
            return payload
        try:
            return GenerationRequest.model_validate(payload)
        except ValidationError as exc:
            raise InputValidationError("Validation failed", details=exc.errors(include_url=False)) from exc

    @staticmethod
    def _scoped(root: Path, name: str) -> Path:
        base = root.resolve()
        path = (base / name).resolve()
        if path.parent != base:
            raise InputValidationError(f"Invalid request id: {name!r}")
        return path

    def work_dir(self, request_id: str) -> Path:
        return self._scoped(settings.temp_dir, request_id)

    def output_path(self, request_id: str) -> Path:
        return self._scoped(settings.outputs_dir, f"video_{request_id}.mp4")

    def subtitle_style(self, canvas: CanvasSize) -> SubtitleStyle:
        return SubtitleStyle(
            width=canvas.width,
            height=canvas.height,
            source_font_path=str(settings.fonts_dir / settings.source_font_file),
            translation_font_path=str(settings.fonts_dir / settings.translation_font_file),
            source_font_size=max(1, int(canvas.width * settings.source_font_ratio)),
            translation_font_size=max(1, int(canvas.width * settings.translation_font_ratio)),
        )

    def start(self, payload: GenerationRequest | dict) -> GenerationResult:
        """Run one generation to completion in the calling thread."""
        request = self.coerce(payload)
        if not self.progress.begin(request.request_id):
            logger.info("Request %s already in progress. Ignoring duplicate.", request.request_id)
            return GenerationResult(status="already_processing", request_id=request.request_id)
        return self._run(request)

    def submit(self, payload: GenerationRequest | dict) -> GenerationResult:
        """Admit a generation and run it on the background worker."""
        request = self.coerce(payload)
        if not self.progress.begin(request.request_id):
            logger.info("Request %s already in progress. Ignoring duplicate.", request.request_id)
            return GenerationResult(status="already_processing", request_id=request.request_id)

        def job() -> None:
            try:
                self._run(request)
            except Exception:  # noqa: BLE001
                logger.exception("Background generation %s failed", request.request_id)

        if not self.worker.submit(f"generate:{request.request_id}", job):
            logger.info("Previous job for %s is still winding down. Ignoring duplicate.", request.request_id)
            self.progress.release(request.request_id)
            return GenerationResult(status="already_processing", request_id=request.request_id)
        return GenerationResult(status="started", request_id=request.request_id)

    def subscribe(self, request_id: str, subscription: PushSubscription) -> bool:
        return self.notifier.subscribe(request_id, subscription)

    def watch(self, request_id: str, interval: float | None = None, idle_timeout: float | None = None):
        return self.progress.watch(request_id, interval=interval, idle_timeout=idle_timeout)

    def release_output(self, path: Path) -> None:
        if remove_file(path):
            logger.info("Deleted output file: %s", path)

    def _process_verses(self, request_id: str, verses: list[Verse], work_dir: Path, style: SubtitleStyle) -> list[tuple[Path, Path]]:
        def _one(verse: Verse) -> tuple[Path, Path]:
            audio_path = self.fetcher.download(verse.audio_source, work_dir / f"audio_{verse.number}.mp3")
            verse.duration = self.prober.probe(audio_path)
            overlay = self.subtitles.render(
                verse.source_text,
                verse.translation_text,
                work_dir / f"sub_{verse.number}.png",
                style,
            )
            return audio_path, overlay

        workers = max(1, min(settings.verse_workers, len(verses)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"verses-{request_id[:8]}") as pool:
            futures = [pool.submit(_one, verse) for verse in verses]
            try:
                for count, future in enumerate(as_completed(futures), start=1):
                    future.result()
                    percentage = VERSE_PROGRESS_START + (VERSE_PROGRESS_SPAN * count) // len(verses)
                    self.progress.update(request_id, ProgressStage.processing_audio, percentage)
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
            return [future.result() for future in futures]

    def _run(self, request: GenerationRequest) -> GenerationResult:
        request_id = request.request_id
        work_dir = self.work_dir(request_id)
        output_path = self.output_path(request_id)
        try:
            self.progress.update(request_id, ProgressStage.starting)
            self._settle_cleanup(request_id, work_dir)
            ensure_dir(work_dir)

            self.progress.update(request_id, ProgressStage.fetching)
            verses = self.resolver.resolve(
                request.surah,
                request.reciter_id,
                request.translation_id,
                request.ayah_start,
                request.ayah_end,
            )

            self.progress.update(request_id, ProgressStage.downloading)
            background = self.fetcher.resolve_background(request.background_url, work_dir / "background.mp4")

            self.progress.update(request_id, ProgressStage.processing_audio)
            canvas = CanvasSize.for_request(request.resolution, request.platform)
            assets = self._process_verses(request_id, verses, work_dir, self.subtitle_style(canvas))
            timeline = build_timeline(verses)

            self.progress.update(request_id, ProgressStage.rendering)
            self.planner.render(
                background=background,
                audio_paths=[audio for audio, _ in assets],
                overlays=[overlay for _, overlay in assets],
                timeline=timeline,
                width=canvas.width,
                height=canvas.height,
                output_path=output_path,
                on_progress=lambda pct: self.progress.update(request_id, ProgressStage.rendering, pct),
            )
            self.progress.update(request_id, ProgressStage.completed)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Generation %s failed: %s", request_id, message)
            self.progress.fail(request_id, message)
            remove_file(output_path)
            remove_tree(work_dir)
            self.notifier.forget(request_id)
            raise

        logger.info("Generation %s completed: %d verses, %.2fs", request_id, len(verses), total_duration(timeline))
        if self.notifier.has_subscription(request_id):
            self.worker.fire(lambda: self.notifier.notify(request_id))
        self._schedule_cleanup(request_id, work_dir)
        return GenerationResult(
            status="completed",
            request_id=request_id,
            output_path=str(output_path),
            verse_count=len(verses),
            total_duration=total_duration(timeline),
        )

    def _schedule_cleanup(self, request_id: str, work_dir: Path) -> None:
        delay = settings.cleanup_delay_seconds
        if delay <= 0:
            remove_tree(work_dir)
            return

        def _cleanup() -> None:
            remove_tree(work_dir)
            with self._cleanup_guard:
                if self._cleanups.get(request_id) is timer:
                    del self._cleanups[request_id]

        timer = threading.Timer(delay, _cleanup)
        timer.daemon = True
        with self._cleanup_guard:
            self._cleanups[request_id] = timer
            timer.start()

    def _settle_cleanup(self, request_id: str, work_dir: Path) -> None:
        """Finish a previous run's pending cleanup before the id reuses its work dir."""
        with self._cleanup_guard:
            timer = self._cleanups.pop(request_id, None)
        if timer is None:
            return
        timer.cancel()
        timer.join()
        remove_tree(work_dir)
