# recipe_video/app/services/pipeline.py
"""
Ingestion run orchestration.

Each run walks ACQUIRING -> NORMALIZING -> ANALYZING -> SYNTHESIZING ->
FINALIZING -> DONE, or stops in FAILED with the stage that raised. Blocking
work (external tools, model calls) runs on a bounded thread pool; the event
loop only sequences stages, enforces timeouts and owns cleanup.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from recipe_video.app.config import PipelineSettings
from recipe_video.app.domain.errors import PipelineError, RunCancelledError, StageTimeoutError
from recipe_video.app.domain.models import (
    IngestionRun,
    MediaArtifactSet,
    RecipeDraft,
    RemoteURL,
    Stage,
    SynthesizedRecipe,
    TranscriptResult,
    VideoSource,
)
from recipe_video.app.infra.storage.base import MediaStore, StoredMedia
from recipe_video.services.errors import ProcessCancelledError
from recipe_video.services.fetcher import SourceAcquirer
from recipe_video.services.ids import detect_platform, new_run_id
from recipe_video.services.media import MediaNormalizer
from recipe_video.services.synthesis import RecipeSynthesizer
from recipe_video.services.transcribe import AudioTranscriber
from recipe_video.services.vision import VisualAnalyzer

logger = logging.getLogger(__name__)


class RunHandle:
    """Caller-side view of a submitted run."""

    def __init__(self, run: IngestionRun, task: "asyncio.Task[SynthesizedRecipe]") -> None:
        self.run = run
        self.task = task

    @property
    def run_id(self) -> str:
        return self.run.run_id

    @property
    def stage(self) -> Stage:
        return self.run.stage

    def done(self) -> bool:
        return self.task.done()

    def cancel(self) -> bool:
        self.run.cancel_event.set()
        return self.task.cancel()


class PipelineOrchestrator:
    def __init__(
        self,
        settings: PipelineSettings,
        acquirer: SourceAcquirer,
        normalizer: MediaNormalizer,
        visual_analyzer: VisualAnalyzer,
        transcriber: AudioTranscriber,
        synthesizer: RecipeSynthesizer,
        media_store: MediaStore,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self.settings = settings
        self.acquirer = acquirer
        self.normalizer = normalizer
        self.visual_analyzer = visual_analyzer
        self.transcriber = transcriber
        self.synthesizer = synthesizer
        self.media_store = media_store
        self.temp_root = Path(settings.TEMP_ROOT)

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.MAX_WORKERS,
            thread_name_prefix="pipeline",
        )
        self._run_slots = asyncio.Semaphore(settings.MAX_CONCURRENT_RUNS)
        self._handles: dict[str, RunHandle] = {}

    @property
    def active_runs(self) -> list[RunHandle]:
        return list(self._handles.values())

    def submit(self, source: VideoSource) -> RunHandle:
        """Start a run on the current event loop and return immediately."""
        loop = asyncio.get_running_loop()
        run_id = new_run_id()
        run_dir = self.temp_root / run_id
        run_dir.mkdir(parents=True, exist_ok=False)

        run = IngestionRun(run_id=run_id, run_dir=run_dir, source=source)
        task = loop.create_task(self._execute(run), name=f"ingest-{run_id}")
        handle = RunHandle(run, task)
        self._handles[run_id] = handle
        task.add_done_callback(functools.partial(self._on_task_done, run))
        return handle

    async def wait(self, handle: RunHandle) -> SynthesizedRecipe:
        """
        Suspend until the run is terminal.

        Cancelling the waiting coroutine cancels the run as well.

        Raises:
            PipelineError: the typed failure of the stage that stopped the run
        """
        try:
            return await handle.task
        except asyncio.CancelledError:
            if not handle.task.cancelled():
                raise
            # Cancelled before its first step, so _execute never ran.
            raise self._settle_cancelled(handle.run) from None

    async def ingest(self, source: VideoSource) -> SynthesizedRecipe:
        return await self.wait(self.submit(source))

    async def aclose(self) -> None:
        handles = self.active_runs
        for handle in handles:
            handle.cancel()
        if handles:
            await asyncio.gather(*(handle.task for handle in handles), return_exceptions=True)
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    async def _execute(self, run: IngestionRun) -> SynthesizedRecipe:
        t0 = time.monotonic()
        logger.info("run.start run=%s source=%s", run.run_id, run.source.kind.value)
        try:
            async with self._run_slots:
                recipe = await self._run_stages(run)
            run.succeed(recipe)
            logger.info("run.ok run=%s dt=%.2fs", run.run_id, time.monotonic() - t0)
            return recipe

        except PipelineError as error:
            run.cancel_event.set()
            run.fail(error.stage, error)
            logger.warning(
                "run.fail run=%s stage=%s error=%s dt=%.2fs",
                run.run_id,
                error.stage.value,
                error,
                time.monotonic() - t0,
            )
            raise

        except (asyncio.CancelledError, ProcessCancelledError):
            run.cancel_event.set()
            error = RunCancelledError(run.stage)
            run.fail(run.stage, error)
            logger.info("run.cancelled run=%s stage=%s", run.run_id, run.stage.value)
            raise error from None

        except Exception as error:
            run.fail(run.stage, error)
            logger.exception("run.error run=%s stage=%s", run.run_id, run.stage.value)
            raise

        finally:
            self._cleanup(run)

    def _on_task_done(self, run: IngestionRun, task: "asyncio.Task[SynthesizedRecipe]") -> None:
        self._handles.pop(run.run_id, None)
        if task.cancelled():
            self._settle_cancelled(run)

    def _settle_cancelled(self, run: IngestionRun) -> RunCancelledError:
        if not run.is_terminal:
            run.cancel_event.set()
            run.fail(run.stage, RunCancelledError(run.stage))
            logger.info("run.cancelled run=%s stage=%s", run.run_id, run.failed_stage.value)
        self._cleanup(run)
        if isinstance(run.error, RunCancelledError):
            return run.error
        return RunCancelledError(run.failed_stage or run.stage)

    async def _run_stages(self, run: IngestionRun) -> SynthesizedRecipe:
        raw_path: Path = await self._stage(
            run,
            Stage.ACQUIRING,
            self.acquirer.acquire,
            run.source,
            run.run_dir,
            run.run_id,
            run.cancel_event,
        )
        artifacts: MediaArtifactSet = await self._stage(
            run,
            Stage.NORMALIZING,
            self.normalizer.normalize,
            raw_path,
            run.run_dir,
            run.run_id,
            run.cancel_event,
        )
        draft, transcript = await self._analyze(run, artifacts)
        recipe: RecipeDraft = await self._stage(
            run,
            Stage.SYNTHESIZING,
            self.synthesizer.synthesize,
            draft,
            transcript,
        )
        stored = await self._finalize(run, artifacts)

        source = run.source
        return SynthesizedRecipe.from_parts(
            recipe=recipe,
            transcript=transcript,
            source=source,
            platform=detect_platform(source.url) if isinstance(source, RemoteURL) else None,
            video_path=stored.video_path,
            thumbnail_path=stored.thumbnail_path,
            duration_sec=artifacts.duration_sec,
            run_id=run.run_id,
        )

    async def _stage(self, run: IngestionRun, stage: Stage, func: Callable[..., Any], *args: Any) -> Any:
        self._enter(run, stage)
        future = asyncio.get_running_loop().run_in_executor(
            self._executor,
            functools.partial(func, *args),
        )
        return await self._await_stage(run, stage, future)

    async def _analyze(
        self,
        run: IngestionRun,
        artifacts: MediaArtifactSet,
    ) -> tuple[RecipeDraft, TranscriptResult]:
        self._enter(run, Stage.ANALYZING)
        loop = asyncio.get_running_loop()
        visual = loop.run_in_executor(self._executor, self.visual_analyzer.analyze_frame, artifacts.frame_base64)
        audio = loop.run_in_executor(self._executor, self.transcriber.transcribe, artifacts.audio_path)
        draft, transcript = await self._await_stage(run, Stage.ANALYZING, asyncio.gather(visual, audio))
        return draft, transcript

    async def _finalize(self, run: IngestionRun, artifacts: MediaArtifactSet) -> StoredMedia:
        self._enter(run, Stage.FINALIZING)
        future = asyncio.get_running_loop().run_in_executor(
            self._executor,
            self.media_store.persist,
            run.run_id,
            artifacts.video_path,
            artifacts.thumbnail_path,
        )
        try:
            return await self._await_stage(run, Stage.FINALIZING, future)
        except (StageTimeoutError, asyncio.CancelledError):
            # The run is failing; whatever was stored must not survive it.
            future.add_done_callback(self._discard_stored)
            raise

    async def _await_stage(self, run: IngestionRun, stage: Stage, future: Awaitable[Any]) -> Any:
        timeout = self.settings.timeout_for(stage)
        future = asyncio.ensure_future(future)
        try:
            return await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            run.cancel_event.set()
            await self._drain(run, future)
            raise StageTimeoutError(stage, timeout) from None
        except asyncio.CancelledError:
            run.cancel_event.set()
            await self._drain(run, future)
            raise

    async def _drain(self, run: IngestionRun, future: "asyncio.Future[Any]") -> None:
        """Give a cancelled stage a moment to stop its process before cleanup."""
        done, _pending = await asyncio.wait({future}, timeout=self.settings.CANCEL_GRACE_SECONDS)
        if future in done:
            self._consume(future)
        else:
            logger.warning("run.abandon run=%s stage=%s", run.run_id, run.stage.value)
            future.add_done_callback(self._consume)

    def _discard_stored(self, future: "asyncio.Future[Any]") -> None:
        if future.cancelled() or future.exception() is not None:
            return
        self.media_store.delete(future.result())

    @staticmethod
    def _consume(future: "asyncio.Future[Any]") -> None:
        if not future.cancelled():
            future.exception()

    @staticmethod
    def _enter(run: IngestionRun, stage: Stage) -> None:
        run.stage = stage
        logger.info("run.stage run=%s stage=%s", run.run_id, stage.value)

    def _cleanup(self, run: IngestionRun) -> None:
        if run.cleaned_up:
            return
        run.cleaned_up = True

        if not run.run_dir.exists():
            return

        try:
            shutil.rmtree(run.run_dir)
            logger.debug("run.cleanup run=%s", run.run_id)
        except OSError as os_error:
            logger.warning("Failed to cleanup run dir %s: %s", run.run_dir, os_error)


def create_default_orchestrator(settings: PipelineSettings) -> PipelineOrchestrator:
    from recipe_video.app.infra.storage.local_provider import LocalMediaStore
    from recipe_video.services.gemini_client import (
        SYNTHESIS_PROMPT,
        VISION_PROMPT,
        GeminiClient,
        GeminiSynthesisService,
        GeminiVisionService,
        load_system_prompt,
    )
    from recipe_video.services.process_runner import SubprocessRunner
    from recipe_video.services.transcribe import WhisperSpeechService

    runner = SubprocessRunner()
    gemini = GeminiClient(api_key=settings.GEMINI_API_KEY, model_name=settings.GEMINI_MODEL)

    return PipelineOrchestrator(
        settings=settings,
        acquirer=SourceAcquirer(
            runner,
            download_command=settings.YTDLP_COMMAND,
            download_format=settings.DOWNLOAD_FORMAT,
        ),
        normalizer=MediaNormalizer(
            runner,
            ffmpeg_bin=settings.FFMPEG_BIN,
            ffprobe_bin=settings.FFPROBE_BIN,
            thumbnail_offset=settings.THUMBNAIL_OFFSET,
            frame_offset=settings.FRAME_OFFSET,
        ),
        visual_analyzer=VisualAnalyzer(GeminiVisionService(gemini), load_system_prompt(VISION_PROMPT)),
        transcriber=AudioTranscriber(
            WhisperSpeechService(
                model_name=settings.WHISPER_MODEL,
                device=settings.WHISPER_DEVICE,
                beam_size=settings.WHISPER_BEAM_SIZE,
            ),
            language=settings.TRANSCRIPTION_LANGUAGE,
        ),
        synthesizer=RecipeSynthesizer(GeminiSynthesisService(gemini), load_system_prompt(SYNTHESIS_PROMPT)),
        media_store=LocalMediaStore(settings.MEDIA_ROOT),
    )
