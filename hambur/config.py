"""Settings via pydantic-settings with HAMBUR_ env prefix.

Provider API keys use validation_alias to read the same unprefixed env
vars (OPENAI_API_KEY, OPENROUTER_API_KEY) other tools use, so a single
.env file can be shared.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HAMBUR_", env_file=".env", extra="ignore")

    # Model and endpoint
    model: str = "google/gemini-2.0-flash-001"
    api_base: str = ""  # empty = provider default
    api_key: str = ""  # empty = provider's key env var
    system_prompt: str = ""

    # Provider credentials, read from unprefixed env vars
    openai_api_key: str = Field("", validation_alias="OPENAI_API_KEY")
    openrouter_api_key: str = Field("", validation_alias="OPENROUTER_API_KEY")

    # Transport
    api_timeout_connect: float = 10.0  # seconds
    api_timeout_read: float = 120.0  # seconds
    turn_timeout: float | None = None  # whole-turn deadline, None = unlimited

    # Display
    show_reasoning: bool = True

    log_level: str = "warning"
    debug: bool = False

    @model_validator(mode="after")
    def _validate_transport(self) -> "Settings":
        if self.api_timeout_connect <= 0 or self.api_timeout_read <= 0:
            raise ValueError("api timeouts must be positive")
        if self.turn_timeout is not None and self.turn_timeout <= 0:
            raise ValueError("turn_timeout must be positive when set")
        if self.api_base and not self.api_base.startswith(("http://", "https://")):
            raise ValueError(f"api_base must be an http(s) URL, got {self.api_base!r}")
        return self

    @property
    def effective_log_level(self) -> str:
        return "debug" if self.debug else self.log_level
