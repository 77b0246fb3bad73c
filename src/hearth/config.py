"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from hearth.exceptions import ConfigError

DEFAULT_IDENTITY = (
    "You are a personal assistant agent. Be concise and accurate. "
    "Use the available tools when they help you complete the user's request, "
    "and answer directly when they do not."
)


class AgentConfig(BaseModel):
    id: str = "main"
    identity: str = DEFAULT_IDENTITY
    temperature: float = 0.7
    max_rounds: int = Field(default=25, ge=1)
    history_limit: int = Field(default=50, ge=1)
    memory_limit: int = Field(default=5, ge=0)


class AnthropicConfig(BaseModel):
    api_key: str
    base_url: Optional[str] = None
    max_retries: int = 3
    timeout: int = 120


class LLMConfig(BaseModel):
    backend: str = "anthropic"
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096


class ToolRulesConfig(BaseModel):
    allow: Optional[list[str]] = None
    deny: list[str] = Field(default_factory=list)


class ToolPolicyConfig(ToolRulesConfig):
    profile: Literal["minimal", "coding", "messaging", "full"] = "full"


class ExecutionConfig(BaseModel):
    timeout: int = 30
    max_output: int = 50 * 1024
    allowed_paths: list[str] = Field(default_factory=list)
    blocked_paths: list[str] = Field(default_factory=list)


class ConversationSecurityConfig(BaseModel):
    tools: ToolRulesConfig = Field(default_factory=ToolRulesConfig)
    execution: Optional[ExecutionConfig] = None


class SecurityConfig(BaseModel):
    tools: ToolPolicyConfig = Field(default_factory=ToolPolicyConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    conversations: dict[Literal["main", "group", "channel"], ConversationSecurityConfig] = Field(
        default_factory=dict
    )


class TruncationConfig(BaseModel):
    max_lines: int = Field(default=2000, ge=1)
    max_bytes: int = Field(default=50 * 1024, ge=1)


class BrowserServiceConfig(BaseModel):
    enabled: bool = True
    headless: bool = True
    browser_type: str = "chromium"
    timeout_ms: int = 30000


class SchedulerConfig(BaseModel):
    timezone: str = "UTC"
    agent_turn_timeout: float = Field(default=300.0, gt=0)
    legacy_jobs_path: Optional[str] = None


class ServicesConfig(BaseModel):
    browser: BrowserServiceConfig = Field(default_factory=BrowserServiceConfig)


class MemoryConfig(BaseModel):
    enabled: bool = True
    dir: Optional[str] = None
    chunk_lines: int = Field(default=20, ge=1)


class StorageConfig(BaseModel):
    db_path: str = "./data/hearth.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    agents: list[AgentConfig] = Field(default_factory=lambda: [AgentConfig()])
    anthropic: Optional[AnthropicConfig] = None
    llm: LLMConfig = Field(default_factory=LLMConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    truncation: TruncationConfig = Field(default_factory=TruncationConfig)
    services: ServicesConfig = Field(default_factory=ServicesConfig)
    channels: list[str] = Field(default_factory=list)

    def agent(self, agent_id: str) -> AgentConfig:
        """Return the config for *agent_id*, falling back to the first agent."""
        for cfg in self.agents:
            if cfg.id == agent_id:
                return cfg
        return self.agents[0]

    @property
    def default_agent_id(self) -> str:
        return self.agents[0].id


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_file}: {e}") from e
