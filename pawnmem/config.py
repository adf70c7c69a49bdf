# pawnmem/config.py
"""
Configuration for pawnmem.

All configuration flows through this module. Values are loaded from environment
variables (via .env file) and validated with Pydantic. The host may also mutate
any field at runtime: components keep a reference to the config object and read
the current value on every use instead of copying it at construction time.

Summarizer credentials are resolved through an explicit ``AIConfigProvider``.
Two implementations exist: ``NativeConfigProvider`` reads pawnmem's own
settings, ``DelegatedConfigProvider`` reads a host-supplied object that
satisfies the typed ``HostAIConfig`` protocol. ``select_config_provider``
chooses one at startup.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol, Union, runtime_checkable

import structlog
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings

logger = structlog.get_logger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

GOOGLE_PROVIDER = "Google"
DEFAULT_MODEL = "gpt-3.5-turbo"

# Used when a provider is chosen but no endpoint was configured.
DEFAULT_ENDPOINTS = {
    "openai": "https://api.openai.com/v1/chat/completions",
    "deepseek": "https://api.deepseek.com/v1/chat/completions",
    "google": "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent?key={api_key}",
}


class MemoryConfig(BaseSettings):
    """Tier capacities, decay rates and compression cadence."""

    data_dir: Path = Field(Path("./pawnmem_data"), alias="PAWNMEM_DATA_DIR")

    # Tier capacities (Archive is trimmed periodically rather than on insert)
    max_active: int = Field(3, alias="PAWNMEM_MAX_ACTIVE")
    max_situational: int = Field(20, alias="PAWNMEM_MAX_SITUATIONAL")
    max_event_log: int = Field(50, alias="PAWNMEM_MAX_EVENT_LOG")
    max_archive: int = Field(30, alias="PAWNMEM_MAX_ARCHIVE")

    # Fraction of activity lost per in-game hour
    situational_decay_rate: float = Field(0.01, alias="PAWNMEM_SITUATIONAL_DECAY_RATE")
    event_log_decay_rate: float = Field(0.005, alias="PAWNMEM_EVENT_LOG_DECAY_RATE")
    archive_decay_rate: float = Field(0.001, alias="PAWNMEM_ARCHIVE_DECAY_RATE")

    # Daily Situational → EventLog compression
    enable_daily_summarization: bool = Field(True, alias="PAWNMEM_ENABLE_DAILY_SUMMARIZATION")
    summarization_hour: int = Field(0, alias="PAWNMEM_SUMMARIZATION_HOUR")
    use_ai_summarization: bool = Field(True, alias="PAWNMEM_USE_AI_SUMMARIZATION")

    # Periodic Archive trimming
    enable_auto_archive: bool = Field(True, alias="PAWNMEM_ENABLE_AUTO_ARCHIVE")
    archive_interval_days: int = Field(7, alias="PAWNMEM_ARCHIVE_INTERVAL_DAYS")

    # Prompt injection budget
    max_injected_memories: int = Field(10, alias="PAWNMEM_MAX_INJECTED_MEMORIES")
    max_injected_knowledge: int = Field(5, alias="PAWNMEM_MAX_INJECTED_KNOWLEDGE")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "MemoryConfig":
        self.max_active = max(1, int(self.max_active))
        self.max_situational = max(1, int(self.max_situational))
        self.max_event_log = max(1, int(self.max_event_log))
        self.max_archive = max(1, int(self.max_archive))
        self.situational_decay_rate = _clamp_rate(self.situational_decay_rate)
        self.event_log_decay_rate = _clamp_rate(self.event_log_decay_rate)
        self.archive_decay_rate = _clamp_rate(self.archive_decay_rate)
        self.summarization_hour = max(0, min(23, int(self.summarization_hour)))
        self.archive_interval_days = max(1, int(self.archive_interval_days))
        self.max_injected_memories = max(0, int(self.max_injected_memories))
        self.max_injected_knowledge = max(0, int(self.max_injected_knowledge))
        return self

    @property
    def decay_rates(self) -> "DecayRates":
        return DecayRates(
            situational=self.situational_decay_rate,
            event_log=self.event_log_decay_rate,
            archive=self.archive_decay_rate,
        )

    @property
    def state_path(self) -> Path:
        return self.data_dir / "memory_state.json"


class ScoringConfig(BaseSettings):
    """Relevance weights. Read fresh on every scoring call."""

    weight_time: float = Field(0.3, alias="PAWNMEM_WEIGHT_TIME")
    weight_importance: float = Field(0.3, alias="PAWNMEM_WEIGHT_IMPORTANCE")
    weight_keyword: float = Field(0.4, alias="PAWNMEM_WEIGHT_KEYWORD")
    weight_layer: float = Field(0.2, alias="PAWNMEM_WEIGHT_LAYER")
    weight_pinned: float = Field(0.5, alias="PAWNMEM_WEIGHT_PINNED")
    weight_user_edited: float = Field(0.3, alias="PAWNMEM_WEIGHT_USER_EDITED")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}


class SummarizerConfig(BaseSettings):
    """Credentials and endpoint for the external summarization model."""

    use_host_ai_config: bool = Field(True, alias="PAWNMEM_USE_HOST_AI_CONFIG")
    api_key: str = Field("", alias="PAWNMEM_API_KEY")
    api_url: str = Field("", alias="PAWNMEM_API_URL")
    model: str = Field(DEFAULT_MODEL, alias="PAWNMEM_MODEL")
    provider: str = Field("OpenAI", alias="PAWNMEM_PROVIDER")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def strip_values(self) -> "SummarizerConfig":
        self.api_key = (self.api_key or "").strip()
        self.api_url = (self.api_url or "").strip()
        self.model = (self.model or "").strip() or DEFAULT_MODEL
        self.provider = (self.provider or "").strip() or "OpenAI"
        return self


def _clamp_rate(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


@dataclass(frozen=True)
class DecayRates:
    """Per-tier activity decay applied once per in-game hour."""

    situational: float = 0.01
    event_log: float = 0.005
    archive: float = 0.001


# ---------------------------------------------------------------------------
# Summarizer credential providers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProviderSettings:
    """Fully resolved credentials for one summarization backend."""

    provider: str
    api_key: str
    api_url: str
    model: str

    @property
    def is_google(self) -> bool:
        return self.provider.strip().lower() == GOOGLE_PROVIDER.lower()


def default_endpoint(provider: str) -> str:
    return DEFAULT_ENDPOINTS.get((provider or "").strip().lower(), "")


def _complete(provider: str, api_key: str, api_url: str, model: str) -> Optional[ProviderSettings]:
    provider = (provider or "").strip() or "OpenAI"
    api_key = (api_key or "").strip()
    api_url = (api_url or "").strip() or default_endpoint(provider)
    model = (model or "").strip() or DEFAULT_MODEL
    if not api_key or not api_url:
        return None
    return ProviderSettings(provider=provider, api_key=api_key, api_url=api_url, model=model)


@runtime_checkable
class AIConfigProvider(Protocol):
    """Anything that can produce summarizer credentials on demand."""

    name: str

    def resolve(self) -> Optional[ProviderSettings]:
        """Return complete credentials, or None when not configured."""
        ...


@runtime_checkable
class HostAIConfig(Protocol):
    """The settings surface a host application exposes for delegation."""

    api_key: Optional[str]
    base_url: Optional[str]
    provider: Optional[str]
    model: Optional[str]


class NativeConfigProvider:
    """Reads pawnmem's own ``SummarizerConfig`` (live, so runtime edits apply)."""

    name = "native"

    def __init__(self, config: SummarizerConfig):
        self._config = config

    def resolve(self) -> Optional[ProviderSettings]:
        c = self._config
        return _complete(c.provider, c.api_key, c.api_url, c.model)


class DelegatedConfigProvider:
    """Reads credentials from the host application's active AI settings.

    ``source`` is either a ``HostAIConfig`` or a zero-argument callable that
    returns one (so the host may swap its active profile at runtime).
    """

    name = "delegated"

    def __init__(self, source: Union[HostAIConfig, Callable[[], Optional[HostAIConfig]]]):
        self._source = source

    def _current(self) -> Optional[HostAIConfig]:
        if callable(self._source) and not isinstance(self._source, HostAIConfig):
            return self._source()
        return self._source

    def resolve(self) -> Optional[ProviderSettings]:
        host = self._current()
        if host is None:
            return None
        return _complete(
            getattr(host, "provider", None) or "OpenAI",
            getattr(host, "api_key", None) or "",
            getattr(host, "base_url", None) or "",
            getattr(host, "model", None) or "",
        )


def select_config_provider(
    config: SummarizerConfig,
    host: Union[HostAIConfig, Callable[[], Optional[HostAIConfig]], None] = None,
) -> AIConfigProvider:
    """Pick the credential source once at startup.

    The host's settings win when delegation is enabled and they are complete;
    otherwise pawnmem's own settings are used.
    """
    if config.use_host_ai_config and host is not None:
        delegated = DelegatedConfigProvider(host)
        settings = delegated.resolve()
        if settings is not None:
            logger.info(
                "config.ai_provider_selected",
                source=delegated.name,
                provider=settings.provider,
                model=settings.model,
            )
            return delegated
        logger.info("config.host_ai_config_incomplete", fallback="native")

    native = NativeConfigProvider(config)
    settings = native.resolve()
    if settings is None:
        logger.warning("config.ai_config_incomplete", hint="rule-based summaries only")
    else:
        logger.info(
            "config.ai_provider_selected",
            source=native.name,
            provider=settings.provider,
            model=settings.model,
        )
    return native


class PawnMemConfig:
    """
    Master configuration that composes all subsystem configs.

    Every component receives its config from here. No global state, no hidden
    settings.
    """

    def __init__(
        self,
        memory: Optional[MemoryConfig] = None,
        scoring: Optional[ScoringConfig] = None,
        summarizer: Optional[SummarizerConfig] = None,
    ):
        self.memory = memory or MemoryConfig()
        self.scoring = scoring or ScoringConfig()
        self.summarizer = summarizer or SummarizerConfig()

        if not self.memory.data_dir.is_absolute():
            self.memory.data_dir = (_PROJECT_ROOT / self.memory.data_dir).resolve()

    def __repr__(self) -> str:
        return (
            f"PawnMemConfig(tiers={self.memory.max_active}/{self.memory.max_situational}/"
            f"{self.memory.max_event_log}/{self.memory.max_archive}, "
            f"provider={self.summarizer.provider}, model={self.summarizer.model})"
        )
