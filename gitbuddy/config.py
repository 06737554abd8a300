"""Configuration management for gitbuddy."""

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


# Paths
DEFAULT_CONFIG_PATH = Path("~/.gitbuddy/config.yaml").expanduser()
DEFAULT_SESSIONS_DIR = Path("~/.gitbuddy/sessions").expanduser()
LOCAL_CONFIG_FILENAME = "gitbuddy.yaml"


class ModelConfig(BaseModel):
    """Model configuration."""

    provider: str = "openai"
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    max_tokens: int = 4096
    api_key: str = ""
    base_url: str = ""
    timeout: float = 120.0


class RetryConfig(BaseModel):
    """Retry policy around streaming model calls."""

    enabled: bool = True
    max_retries: int = Field(default=3, ge=0)
    backoff_base: float = Field(default=1.0, ge=0)
    backoff_max: float = Field(default=8.0, ge=0)


class AgentConfig(BaseModel):
    """Agent loop bounds."""

    max_iterations: int = Field(default=50, ge=1)
    iteration_extension: int = Field(default=30, ge=1)
    plan_display_interval: int = Field(default=3, ge=1)


class CompressionConfig(BaseModel):
    """History compression configuration."""

    enabled: bool = True
    threshold: int = Field(default=20, ge=3)
    keep_recent: int = Field(default=10, ge=0)
    show_summary: bool = False
    max_tool_result_chars: int = Field(default=5000, ge=100)


class SessionConfig(BaseModel):
    """Session configuration."""

    path: str = str(DEFAULT_SESSIONS_DIR)
    max_sessions: int = Field(default=10, ge=1)
    max_size_bytes: int = 50 * 1024 * 1024
    auto_save: bool = True


class ReviewConfig(BaseModel):
    """Review agent defaults."""

    min_severity: Literal["info", "warning", "error"] = "info"


class DebugConfig(BaseModel):
    """Debug agent defaults."""

    issues_dir: str = "./issues"
    grep_timeout: float = Field(default=10.0, gt=0)


class UIConfig(BaseModel):
    """UI configuration."""

    language: str = "en"
    show_tokens: bool = True
    colors: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"


class Config(BaseSettings):
    """Main configuration for gitbuddy."""

    model: ModelConfig = Field(default_factory=ModelConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    agent: AgentConfig = Field(default_factory=AgentConfig)
    compression: CompressionConfig = Field(default_factory=CompressionConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    review: ReviewConfig = Field(default_factory=ReviewConfig)
    debug: DebugConfig = Field(default_factory=DebugConfig)
    ui: UIConfig = Field(default_factory=UIConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = SettingsConfigDict(
        env_prefix="GITBUDDY_",
        env_file=".env",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML data arrives as init kwargs; environment variables win over it.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @classmethod
    def resolve_default_config_path(cls) -> Path:
        """Resolve default config path with local-first precedence."""
        local_path = Path.cwd() / LOCAL_CONFIG_FILENAME
        if local_path.exists():
            return local_path
        return DEFAULT_CONFIG_PATH

    @classmethod
    def from_yaml(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML file."""
        config_path = Path(path).expanduser() if path else cls.resolve_default_config_path()

        if not config_path.exists():
            return cls()

        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    @classmethod
    def load(cls, path: Path | str | None = None) -> "Config":
        """Load configuration from YAML with ``GITBUDDY_*`` environment overrides on top."""
        return cls.from_yaml(path)

    def save(self, path: Path | str | None = None) -> None:
        """Save configuration to YAML file."""
        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self.model_dump(exclude_none=True)

        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def sessions_dir(self) -> Path:
        """Resolved session storage directory."""
        return Path(self.session.path).expanduser()


# Global config instance
_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = Config.load()
    return _config


def set_config(config: Config) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
