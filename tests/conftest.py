"""
Shared fixtures for the pawnmem test suite.

Provides a controllable simulation clock, environment-independent configs,
a deferred executor for deterministic background work, and mock-transport
pipelines so individual test modules can focus on behavior rather than setup.
"""

from __future__ import annotations

import json
from typing import Any, Callable, Optional

import httpx
import pytest

from pawnmem.api.summarizer import SummarizationPipeline
from pawnmem.clock import SimulationClock
from pawnmem.config import MemoryConfig, PawnMemConfig, ProviderSettings, ScoringConfig, SummarizerConfig
from pawnmem.harness.retry import RetryConfig
from pawnmem.memory.scoring import ScoringEngine
from pawnmem.memory.tiers import TieredMemory


# ---------------------------------------------------------------------------
# Background work helpers
# ---------------------------------------------------------------------------

class DeferredExecutor:
    """Executor stand-in that queues work until the test runs it."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Callable[..., Any], tuple, dict]] = []

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        self.jobs.append((fn, args, kwargs))

    def run_next(self) -> None:
        fn, args, kwargs = self.jobs.pop(0)
        fn(*args, **kwargs)

    def run_all(self) -> int:
        ran = 0
        while self.jobs:
            fn, args, kwargs = self.jobs.pop(0)
            fn(*args, **kwargs)
            ran += 1
        return ran

    def shutdown(self, wait: bool = True) -> None:
        self.jobs.clear()


class StaticProvider:
    """Config provider returning fixed settings (or None when unconfigured)."""

    name = "static"

    def __init__(self, settings: Optional[ProviderSettings]):
        self.settings = settings

    def resolve(self) -> Optional[ProviderSettings]:
        return self.settings


OPENAI_SETTINGS = ProviderSettings(
    provider="OpenAI",
    api_key="sk-test",
    api_url="https://api.example.test/v1/chat/completions",
    model="gpt-test",
)


def chat_response(text: str, status_code: int = 200) -> httpx.Response:
    payload = {"choices": [{"message": {"role": "assistant", "content": text}}]}
    return httpx.Response(status_code, text=json.dumps(payload))


class RecordingHandler:
    """MockTransport handler that replays scripted responses and records requests.

    Plain strings are wrapped as successful chat completions.
    """

    def __init__(self, *responses: httpx.Response | str):
        self.requests: list[httpx.Request] = []
        self.script(*responses)

    def script(self, *responses: httpx.Response | str) -> None:
        self.responses = [chat_response(r) if isinstance(r, str) else r for r in responses]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def clock() -> SimulationClock:
    return SimulationClock(start_tick=100_000)


@pytest.fixture()
def memory_config() -> MemoryConfig:
    return MemoryConfig(_env_file=None)


@pytest.fixture()
def scoring_config() -> ScoringConfig:
    return ScoringConfig(_env_file=None)


@pytest.fixture()
def pawnmem_config(tmp_path) -> PawnMemConfig:
    return PawnMemConfig(
        memory=MemoryConfig(_env_file=None, data_dir=tmp_path),
        scoring=ScoringConfig(_env_file=None),
        summarizer=SummarizerConfig(_env_file=None),
    )


@pytest.fixture()
def scoring(scoring_config, clock) -> ScoringEngine:
    return ScoringEngine(scoring_config, clock)


# ---------------------------------------------------------------------------
# Pipeline fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture()
def make_handler():
    """Factory: recording MockTransport handler over scripted responses."""
    return RecordingHandler


@pytest.fixture()
def static_provider():
    """Factory: config provider with fixed settings, OpenAI-style by default."""

    def _make(settings: Optional[ProviderSettings] = OPENAI_SETTINGS) -> StaticProvider:
        return StaticProvider(settings)

    return _make


@pytest.fixture()
def make_pipeline(executor):
    """Factory: pipeline over a scripted handler, run by the deferred executor."""

    def _make(
        handler: Callable[[httpx.Request], httpx.Response],
        settings: Optional[ProviderSettings] = OPENAI_SETTINGS,
        retry_config: Optional[RetryConfig] = None,
    ) -> SummarizationPipeline:
        return SummarizationPipeline(
            StaticProvider(settings),
            executor=executor,
            transport=httpx.MockTransport(handler),
            retry_config=retry_config or RetryConfig(base_delay=0.0),
        )

    return _make


@pytest.fixture()
def memory(memory_config, clock, scoring) -> TieredMemory:
    return TieredMemory("pawn-1", memory_config, clock, scoring, agent_name="Ada")
