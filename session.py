"""Lookup session: query -> analysis -> image -> history, exposed as a state machine.

Every accepted submit bumps a generation counter. A pipeline only touches the
session state or the history while its generation is still the latest one, so a
slow, superseded lookup can never overwrite a newer result.
"""
import asyncio
from typing import Optional

from log import get_logger

logger = get_logger("trilingua.session")

from models import HistoryItem, LookupMode, SessionState, Status, WordRecord
from llm import REQUEST_TIMEOUT, BackendResponseError, TrilinguaError
from analysis import AnalysisClient
from media import MediaClient
from history import HistoryStore

ERROR_MESSAGE = "Unable to analyze the input. Please check your API key or try again."

_BUSY = (Status.ANALYZING, Status.GENERATING_IMAGE)


class SessionController:
    def __init__(self, analysis: AnalysisClient, media: MediaClient, history: HistoryStore,
                 analysis_timeout: Optional[float] = REQUEST_TIMEOUT,
                 image_timeout: Optional[float] = REQUEST_TIMEOUT):
        self.analysis = analysis
        self.media = media
        self.history = history
        self.analysis_timeout = analysis_timeout
        self.image_timeout = image_timeout
        self._state = SessionState()
        self._generation = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state.status in _BUSY

    def submit(self, query: str, mode: LookupMode = "word") -> bool:
        """Start a lookup. Returns False (and does nothing) for blank input or while one is running.

        Must be called from a running event loop; the pipeline runs as a task.
        """
        if not query or not query.strip():
            return False
        if self.busy:
            logger.info("Lookup already in flight; submit ignored",
                        extra={"component": "session", "generation": self._generation})
            return False

        query = query.strip()
        self._generation += 1
        generation = self._generation
        self._set(SessionState(status=Status.ANALYZING, query=query, mode=mode, generation=generation))
        self._task = asyncio.get_running_loop().create_task(self._run(generation, query, mode))
        return True

    async def wait(self) -> SessionState:
        """Wait for the current pipeline (if any) to settle and return the state."""
        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self._state

    def load_from_history(self, item: HistoryItem) -> SessionState:
        """Restore a stored lookup without any backend call; in-flight work is cancelled."""
        self._cancel_pending()
        self._generation += 1
        record = item.data
        self._set(SessionState(
            status=Status.COMPLETE,
            query=record.query_text,
            mode="word" if isinstance(record, WordRecord) else "sentence",
            record=record,
            image_url=item.image_url,
            generation=self._generation,
        ))
        return self._state

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _set(self, state: SessionState):
        self._state = state
        logger.debug("Session transition", extra={
            "component": "session", "status": state.status.value, "generation": state.generation,
        })

    def _cancel_pending(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def _run(self, generation: int, query: str, mode: LookupMode):
        try:
            record = await self._analyze(query, mode)
        except Exception as exc:
            if isinstance(exc, TrilinguaError):
                logger.warning("Lookup failed", exc_info=True,
                               extra={"component": "session", "generation": generation, "mode": mode})
            else:
                logger.exception("Lookup failed unexpectedly",
                                 extra={"component": "session", "generation": generation, "mode": mode})
            if self._is_current(generation):
                self._set(SessionState(status=Status.ERROR, query=query, mode=mode,
                                       error=ERROR_MESSAGE, generation=generation))
            return

        if not self._is_current(generation):
            logger.info("Discarding stale analysis", extra={"component": "session", "generation": generation})
            return
        self._set(SessionState(status=Status.GENERATING_IMAGE, query=query, mode=mode,
                               record=record, generation=generation))

        try:
            image_url = await asyncio.wait_for(self.media.generate_image(record.image_concept), self.image_timeout)
        except asyncio.TimeoutError:
            logger.warning("Image generation timed out", extra={"component": "session", "generation": generation})
            image_url = None
        except Exception:
            logger.exception("Image generation failed", extra={"component": "session", "generation": generation})
            image_url = None

        if not self._is_current(generation):
            logger.info("Discarding stale image", extra={"component": "session", "generation": generation})
            return
        self._set(SessionState(status=Status.COMPLETE, query=query, mode=mode,
                               record=record, image_url=image_url, generation=generation))
        self.history.insert(self.history.new_item(record, image_url))

    async def _analyze(self, query: str, mode: LookupMode):
        call = self.analysis.analyze_sentence(query) if mode == "sentence" else self.analysis.analyze_word(query)
        try:
            return await asyncio.wait_for(call, self.analysis_timeout)
        except asyncio.TimeoutError as exc:
            raise BackendResponseError(f"Analysis timed out after {self.analysis_timeout}s") from exc
