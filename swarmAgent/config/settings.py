"""Environment-bound configuration objects.

This module provides Pydantic BaseSettings-based configuration loading from .env files.
Every group reads its own environment variables; nested groups are assembled by
the root ``Settings`` object.

Example:
    from swarmAgent.config.settings import get_settings

    settings = get_settings()  # Cached singleton
    max_swarm = settings.swarm.max_swarm_size
    ttl = settings.governance.approval_timeout_seconds
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class ModelRoutingSettings(BaseSettings):
    """Model identifier and credentials used by every swarm role.

    Supports alias names so a .env written for the chat model settings keeps working:
    - MODEL_SWARM, MODEL_SWARM_ID, MODEL_CHAT_ID
    """

    swarm: str = Field(
        default="chat-mid",
        validation_alias=AliasChoices("MODEL_SWARM", "MODEL_SWARM_ID", "MODEL_CHAT_ID"),
    )
    swarm_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_SWARM_API_KEY", "MODEL_CHAT_API_KEY", "OPENAI_API_KEY"),
    )
    swarm_base_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MODEL_SWARM_BASE_URL", "MODEL_CHAT_BASE_URL"),
    )
    temperature: float = Field(default=0.2, ge=0.0, le=2.0, alias="MODEL_SWARM_TEMPERATURE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class SwarmSettings(BaseSettings):
    """Default swarm limits, overridable per execution.

    - max_iterations: swarm executor invocations per execution
    - max_parallel_agents: agents allowed to wait on approvals at once
    - max_swarm_size: simultaneously active agent cards
    - max_tool_rounds: tool-call turns per agent before it must answer
    - tool_retry_budget: failed tool calls an agent tolerates
    """

    max_iterations: int = Field(default=20, ge=1, le=500, alias="SWARM_MAX_ITERATIONS")
    max_parallel_agents: int = Field(default=3, ge=1, le=50, alias="SWARM_MAX_PARALLEL_AGENTS")
    max_swarm_size: int = Field(default=4, ge=1, le=50, alias="SWARM_MAX_SWARM_SIZE")
    max_tool_rounds: int = Field(default=3, ge=0, le=50, alias="SWARM_MAX_TOOL_ROUNDS")
    tool_retry_budget: int = Field(default=1, ge=0, le=20, alias="SWARM_TOOL_RETRY_BUDGET")
    default_role: str = Field(default="analysis", alias="SWARM_DEFAULT_ROLE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class GovernanceSettings(BaseSettings):
    """Human-in-the-loop approval policy.

    - approval_timeout_seconds: pending approvals older than this are denied
    - auto_approve_risk: highest risk level approved without a human (None = always ask)
    - risk_rules_path: optional YAML file extending the built-in risk table
    """

    approval_timeout_seconds: float = Field(default=900.0, gt=0, alias="APPROVAL_TIMEOUT_SECONDS")
    auto_approve_risk: Optional[Literal["low", "medium", "high"]] = Field(
        default=None, alias="AUTO_APPROVE_RISK"
    )
    risk_rules_path: Optional[str] = Field(default=None, alias="RISK_RULES_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class RegistrySettings(BaseSettings):
    """In-flight execution registry housekeeping."""

    max_idle_seconds: float = Field(default=1800.0, gt=0, alias="EXECUTION_MAX_IDLE_SECONDS")
    completed_retention_seconds: float = Field(
        default=300.0, ge=0, alias="EXECUTION_COMPLETED_RETENTION_SECONDS"
    )
    sweep_interval_seconds: float = Field(default=300.0, gt=0, alias="EXECUTION_SWEEP_INTERVAL_SECONDS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class CapabilitySettings(BaseSettings):
    """Timeout and retry contract for capability provider calls."""

    call_timeout_seconds: float = Field(default=60.0, gt=0, alias="TOOL_CALL_TIMEOUT_SECONDS")
    max_attempts: int = Field(default=2, ge=1, le=10, alias="TOOL_CALL_MAX_ATTEMPTS")
    backoff_seconds: float = Field(default=0.5, ge=0, alias="TOOL_CALL_BACKOFF_SECONDS")
    mcp_config_path: Optional[str] = Field(default=None, alias="MCP_CONFIG_PATH")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class ObservabilitySettings(BaseSettings):
    """Logging and record persistence configuration.

    - log_level: console/file level for the swarmAgent logger
    - log_dir: directory for session log files
    - record_db_path: SQLite file for execution records (empty = disabled)
    - event_queue_size: events buffered for the sinks before new ones are dropped
    """

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_dir: str = Field(default="logs", alias="LOG_DIR")
    log_prompt_max_length: int = Field(default=500, ge=100, le=5000, alias="LOG_PROMPT_MAX_LENGTH")
    record_db_path: Optional[str] = Field(default=None, alias="RECORD_DB_PATH")
    event_queue_size: int = Field(default=1000, ge=1, alias="EVENT_QUEUE_SIZE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


class Settings(BaseSettings):
    """Root application settings loaded from .env file.

    Groups:
    - models: model routing and API credentials
    - swarm: default execution limits
    - governance: approval policy
    - registry: execution registry eviction
    - capabilities: tool call timeout/retry
    - observability: logging and records
    """

    environment: str = Field(default="dev", alias="APP_ENV")
    models: ModelRoutingSettings = Field(default_factory=ModelRoutingSettings)
    swarm: SwarmSettings = Field(default_factory=SwarmSettings)
    governance: GovernanceSettings = Field(default_factory=GovernanceSettings)
    registry: RegistrySettings = Field(default_factory=RegistrySettings)
    capabilities: CapabilitySettings = Field(default_factory=CapabilitySettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
        validate_assignment=True,
        case_sensitive=False,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    return Settings()
