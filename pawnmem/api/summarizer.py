"""
Summarization Pipeline — background model calls, delivered on the host loop.

The host loop must never block on the network, and nothing but the host loop
may touch a pawn's memory. The pipeline bridges the two:

    summarize()        host loop: cache hit → text, otherwise dispatch, return None
    _run()             worker thread: HTTP call with retries, then enqueue callbacks
    drain_callbacks()  host loop: run a bounded number of queued callbacks

Every request is keyed by a fingerprint of (agent, entry count, ordered entry
ids). A fingerprint is requested at most once at a time; its result is cached
for the life of the pipeline and all callbacks registered for it are run in
registration order, exactly once. A failed request only clears the in-flight
mark, so a later ``summarize`` with the same fingerprint tries again.

The cache, the in-flight set, the callback registry and the delivery queue
each have their own lock. No lock is held across a network call or while a
callback runs.
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
from collections import deque
from concurrent.futures import Executor, ThreadPoolExecutor
from functools import partial
from typing import Any, Callable, Optional, Sequence

import httpx
import structlog

from pawnmem.api.providers import build_prompt, build_request, parse_response
from pawnmem.config import AIConfigProvider, ProviderSettings
from pawnmem.harness.retry import RetryConfig, SummaryAPIError, with_retries
from pawnmem.memory.entry import MemoryEntry
from pawnmem.types import SummaryTemplate

logger = structlog.get_logger(__name__)

SummaryCallback = Callable[[str], Any]

DEFAULT_MAX_PER_TICK = 5


class SummarizationPipeline:
    """Asynchronous, cached, de-duplicated summarization requests."""

    def __init__(
        self,
        config_provider: AIConfigProvider,
        executor: Optional[Executor] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_config: Optional[RetryConfig] = None,
    ):
        self._provider = config_provider
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(thread_name_prefix="pawnmem-summarizer")
        self._transport = transport
        self._retry = retry_config or RetryConfig()

        self._cache: dict[str, str] = {}
        self._cache_lock = threading.Lock()
        self._pending: set[str] = set()
        self._pending_lock = threading.Lock()
        self._callbacks: dict[str, list[SummaryCallback]] = {}
        self._callbacks_lock = threading.Lock()
        self._queue: deque[Callable[[], Any]] = deque()
        self._queue_lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._requests = 0
        self._successes = 0
        self._failures = 0

    # ------------------------------------------------------------------
    # Keys and availability
    # ------------------------------------------------------------------

    @staticmethod
    def fingerprint(agent_id: str, entries: Sequence[MemoryEntry]) -> str:
        """Deterministic key over (agent, count, ordered entry ids)."""
        ids = ",".join(entry.id for entry in entries)
        digest = hashlib.sha256(f"{agent_id}|{len(entries)}|{ids}".encode("utf-8")).hexdigest()
        return f"{agent_id}_{len(entries)}_{digest[:16]}"

    def settings(self) -> Optional[ProviderSettings]:
        return self._provider.resolve()

    def is_available(self) -> bool:
        return self.settings() is not None

    # ------------------------------------------------------------------
    # Requests (host loop)
    # ------------------------------------------------------------------

    def get_cached(self, fingerprint: str) -> Optional[str]:
        with self._cache_lock:
            return self._cache.get(fingerprint)

    def is_pending(self, fingerprint: str) -> bool:
        with self._pending_lock:
            return fingerprint in self._pending

    def summarize(
        self,
        agent_id: str,
        entries: Sequence[MemoryEntry],
        template: SummaryTemplate,
        agent_name: Optional[str] = None,
    ) -> Optional[str]:
        """
        Return a cached summary, or start one in the background and return None.

        Never blocks on the network and never raises.
        """
        if not entries:
            return None
        fingerprint = self.fingerprint(agent_id, entries)
        cached = self.get_cached(fingerprint)
        if cached is not None:
            return cached

        settings = self.settings()
        if settings is None:
            logger.debug("summarizer.unavailable", agent_id=agent_id)
            return None

        with self._pending_lock:
            if fingerprint in self._pending:
                return None
            # A worker caches before it clears pending, so check once more.
            cached = self.get_cached(fingerprint)
            if cached is not None:
                return cached
            self._pending.add(fingerprint)

        prompt = build_prompt(agent_name or agent_id, entries, template)
        try:
            self._executor.submit(self._run, fingerprint, settings, prompt)
        except RuntimeError as e:
            # Executor already shut down
            with self._pending_lock:
                self._pending.discard(fingerprint)
            logger.warning("summarizer.submit_failed", fingerprint=fingerprint, error=str(e))
            return None

        with self._stats_lock:
            self._requests += 1
        logger.info(
            "summarizer.dispatched",
            agent_id=agent_id,
            fingerprint=fingerprint,
            template=template.value,
            entries=len(entries),
            provider=settings.provider,
        )
        return None

    def register_callback(self, fingerprint: str, callback: SummaryCallback) -> None:
        with self._callbacks_lock:
            self._callbacks.setdefault(fingerprint, []).append(callback)

    def discard_callbacks(self, fingerprint: str) -> None:
        with self._callbacks_lock:
            self._callbacks.pop(fingerprint, None)

    def drain_callbacks(self, max_per_tick: int = DEFAULT_MAX_PER_TICK) -> int:
        """Run up to ``max_per_tick`` delivered callbacks; return how many ran."""
        batch: list[Callable[[], Any]] = []
        with self._queue_lock:
            while self._queue and len(batch) < max_per_tick:
                batch.append(self._queue.popleft())

        for callback in batch:
            try:
                callback()
            except Exception as e:
                logger.error(
                    "summarizer.callback_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                    exc_info=True,
                )
        return len(batch)

    # ------------------------------------------------------------------
    # Background work (worker threads)
    # ------------------------------------------------------------------

    def _run(self, fingerprint: str, settings: ProviderSettings, prompt: str) -> None:
        try:
            text = asyncio.run(self._call(settings, prompt))
        except Exception as e:
            logger.error(
                "summarizer.request_failed",
                fingerprint=fingerprint,
                provider=settings.provider,
                error_type=type(e).__name__,
                error=str(e)[:200],
            )
            text = None

        if text:
            self._complete(fingerprint, text)
        else:
            self._fail(fingerprint)

    async def _call(self, settings: ProviderSettings, prompt: str) -> Optional[str]:
        request = build_request(settings, prompt)
        async with httpx.AsyncClient(timeout=self._retry.timeout, transport=self._transport) as client:

            async def _attempt() -> str:
                response = await client.post(request.url, headers=request.headers, json=request.body)
                if response.status_code >= 400:
                    raise SummaryAPIError(response.status_code, response.text)
                return response.text

            body = await with_retries(_attempt, self._retry)
        return parse_response(settings, body)

    def _complete(self, fingerprint: str, text: str) -> None:
        with self._cache_lock:
            self._cache.setdefault(fingerprint, text)
            text = self._cache[fingerprint]
        with self._callbacks_lock:
            callbacks = self._callbacks.pop(fingerprint, [])
        with self._queue_lock:
            self._queue.extend(partial(callback, text) for callback in callbacks)
        with self._pending_lock:
            self._pending.discard(fingerprint)
        with self._stats_lock:
            self._successes += 1
        logger.info(
            "summarizer.completed",
            fingerprint=fingerprint,
            callbacks=len(callbacks),
            length=len(text),
        )

    def _fail(self, fingerprint: str) -> None:
        # Registered callbacks stay put so a retried request can still deliver.
        with self._pending_lock:
            self._pending.discard(fingerprint)
        with self._stats_lock:
            self._failures += 1
        logger.warning("summarizer.failed", fingerprint=fingerprint)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict[str, int]:
        with self._cache_lock:
            cached = len(self._cache)
        with self._pending_lock:
            pending = len(self._pending)
        with self._queue_lock:
            queued = len(self._queue)
        with self._stats_lock:
            return {
                "requests": self._requests,
                "successes": self._successes,
                "failures": self._failures,
                "cached": cached,
                "pending": pending,
                "queued": queued,
            }

    def shutdown(self, wait: bool = False) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
