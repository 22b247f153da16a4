"""
Comic Service - wires the ledger, pipeline and eviction scheduler together.

The HTTP layer is synchronous (Flask). Pipelines run on one asyncio event
loop owned by this service in a background thread; submit() hands each
request to that loop and returns immediately.
"""

import asyncio
import logging
import threading
from concurrent.futures import Future
from typing import Optional, Union

from comic_strip.comic_generator import ComicPipeline
from comic_strip.config import ComicSettings
from comic_strip.image_generator import PanelImageGenerator
from comic_strip.ledger import RequestLedger
from comic_strip.models import ComicBrief, TrackedRequest
from comic_strip.scheduler import EvictionScheduler
from comic_strip.text_generator import AnthropicTextGenerator

logger = logging.getLogger(__name__)


class ComicService:
    """Owns the request ledger and runs pipelines in the background."""

    def __init__(
        self,
        pipeline: ComicPipeline,
        ledger: Optional[RequestLedger] = None,
        sweep_interval_hours: float = 2.0,
        recent_limit: int = 10,
    ):
        self.pipeline = pipeline
        self.ledger = ledger if ledger is not None else RequestLedger()
        self.sweep_interval_hours = sweep_interval_hours
        self.recent_limit = recent_limit

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._eviction: Optional[EvictionScheduler] = None
        self._futures: dict[str, Future] = {}
        self._futures_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: ComicSettings) -> "ComicService":
        """Build the service with the default text and image stages."""
        pipeline = ComicPipeline(
            text_generator=AnthropicTextGenerator(
                api_key=settings.anthropic_api_key,
                model=settings.text_model,
                max_tokens=settings.text_max_tokens,
            ),
            image_generator=PanelImageGenerator(
                api_key=settings.minimax_api_key,
                api_url=settings.image_api_url,
                model=settings.image_model,
                width=settings.image_width,
                height=settings.image_height,
                timeout=settings.image_timeout,
                max_attempts=settings.image_max_attempts,
                base_delay=settings.image_base_delay,
                max_delay=settings.image_max_delay,
            ),
        )
        return cls(
            pipeline=pipeline,
            ledger=RequestLedger(retention_hours=settings.retention_hours),
            sweep_interval_hours=settings.sweep_interval_hours,
            recent_limit=settings.recent_limit,
        )

    # ============================================================
    # Lifecycle
    # ============================================================

    @property
    def running(self) -> bool:
        return self._loop is not None and self._loop.is_running()

    def start(self):
        """Start the background event loop and the eviction scheduler."""
        if self._thread is not None:
            return

        self._loop = asyncio.new_event_loop()
        self._eviction = EvictionScheduler(
            self.ledger,
            interval_hours=self.sweep_interval_hours,
            loop=self._loop,
        )
        started = threading.Event()

        def run_loop():
            asyncio.set_event_loop(self._loop)
            self._loop.call_soon(self._eviction.start)
            self._loop.call_soon(started.set)
            self._loop.run_forever()

        self._thread = threading.Thread(target=run_loop, name="comic-pipeline", daemon=True)
        self._thread.start()
        started.wait(timeout=10)
        logger.info("Comic service started")

    def close(self):
        """Stop the scheduler, cancel in-flight pipelines, close clients, stop the loop."""
        if self._loop is None:
            return

        with self._futures_lock:
            pending = list(self._futures.values())
        for future in pending:
            future.cancel()

        async def shutdown():
            if self._eviction is not None:
                self._eviction.stop()
            await self.pipeline.close()

        try:
            asyncio.run_coroutine_threadsafe(shutdown(), self._loop).result(timeout=10)
        except Exception as e:
            logger.warning(f"Comic service shutdown incomplete: {e}")

        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._thread is not None:
            self._thread.join(timeout=10)
        self._loop.close()
        self._loop = None
        self._thread = None
        logger.info("Comic service stopped")

    # ============================================================
    # Requests
    # ============================================================

    def submit(self, brief: Union[ComicBrief, dict]) -> TrackedRequest:
        """
        Validate a brief, register it and start generation in the background.

        Args:
            brief: ComicBrief, or a request body to validate into one

        Returns:
            The newly registered TrackedRequest, still pending

        Raises:
            BriefValidationError: before anything is registered
        """
        if not isinstance(brief, ComicBrief):
            brief = ComicBrief.from_payload(brief)
        if not self.running:
            raise RuntimeError("Comic generator is not initialized")

        request = self.ledger.create(brief)
        future = asyncio.run_coroutine_threadsafe(self.pipeline.run(request), self._loop)
        with self._futures_lock:
            self._futures[request.request_id] = future
        future.add_done_callback(lambda _: self._discard(request.request_id))

        logger.info(f"Comic request {request.request_id} accepted")
        return request

    def _discard(self, request_id: str):
        with self._futures_lock:
            self._futures.pop(request_id, None)

    def wait(self, request_id: str, timeout: Optional[float] = None) -> Optional[TrackedRequest]:
        """Block until a submitted request's pipeline finishes."""
        with self._futures_lock:
            future = self._futures.get(request_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.ledger.get(request_id)

    def get(self, request_id: str) -> Optional[TrackedRequest]:
        return self.ledger.get(request_id)

    def list_recent(self) -> list[TrackedRequest]:
        return self.ledger.list_recent(self.recent_limit)
