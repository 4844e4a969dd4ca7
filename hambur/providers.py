"""Model provider registry and endpoint resolution.

Each provider serves an OpenAI-compatible chat completions endpoint and
reads its credential from one Settings field (backed by an env var).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from hambur.config import Settings
from hambur.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Model:
    id: str
    name: str  # short name used for lookup and display
    provider: str


@dataclass(frozen=True)
class ModelProvider:
    name: str
    api_base: str
    api_key_env: str  # env var name, shown in error hints
    api_key_field: str  # Settings attribute holding the key
    models: tuple[Model, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class Endpoint:
    """Resolved connection parameters for one process (or one model switch)."""

    api_base: str
    api_key: str
    model: str
    api_key_env: str = "HAMBUR_API_KEY"

    def __repr__(self) -> str:
        # Never leak the credential into logs or tracebacks
        return f"Endpoint(api_base={self.api_base!r}, model={self.model!r})"


PROVIDERS: tuple[ModelProvider, ...] = (
    ModelProvider(
        name="deepseek",
        api_base="https://ark.cn-beijing.volces.com/api/v3/chat/completions",
        api_key_env="OPENAI_API_KEY",
        api_key_field="openai_api_key",
        models=(
            Model(id="deepseek-r1-250120", name="deepseek-r1", provider="deepseek"),
            Model(id="deepseek-v3-241226", name="deepseek-v3", provider="deepseek"),
        ),
    ),
    ModelProvider(
        name="openrouter",
        api_base="https://openrouter.ai/api/v1/chat/completions",
        api_key_env="OPENROUTER_API_KEY",
        api_key_field="openrouter_api_key",
        models=(
            Model(id="google/gemini-2.0-flash-001", name="gemini-flash", provider="openrouter"),
            Model(id="google/gemini-2.0-flash-lite-001", name="gemini-flash-lite", provider="openrouter"),
            Model(id="google/gemini-2.0-pro-exp-02-05", name="gemini-pro", provider="openrouter"),
        ),
    ),
)


def all_models() -> list[Model]:
    return [m for p in PROVIDERS for m in p.models]


def find_models(query: str) -> list[Model]:
    """Return models whose short name or id contains query (case-insensitive)."""
    q = query.strip().lower()
    if not q:
        return []
    return [m for m in all_models() if q in m.name.lower() or q in m.id.lower()]


def get_provider_by_model(model_id: str) -> ModelProvider | None:
    for provider in PROVIDERS:
        if any(m.id == model_id for m in provider.models):
            return provider
    return None


def resolve_endpoint(settings: Settings, model: str | None = None) -> Endpoint:
    """Resolve api_base/api_key/model for the given (or configured) model.

    Explicit HAMBUR_API_BASE / HAMBUR_API_KEY win over the registry, which
    allows any OpenAI-compatible server. Raises ConfigError when either
    value cannot be determined.
    """
    model_id = model or settings.model
    provider = get_provider_by_model(model_id)

    api_base = settings.api_base or (provider.api_base if provider else "")
    if not api_base:
        raise ConfigError(
            f"No provider found for model {model_id!r}; set HAMBUR_API_BASE to use it"
        )

    if settings.api_key:
        api_key, key_env = settings.api_key, "HAMBUR_API_KEY"
    elif provider:
        api_key, key_env = getattr(settings, provider.api_key_field), provider.api_key_env
    else:
        api_key, key_env = "", "HAMBUR_API_KEY"

    if not api_key:
        raise ConfigError(f"{key_env} is not set (required for model {model_id!r})")

    logger.debug("Resolved model %s -> %s", model_id, api_base)
    return Endpoint(api_base=api_base, api_key=api_key, model=model_id, api_key_env=key_env)
