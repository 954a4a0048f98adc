"""
Weather Chat configuration handling.

Provides YAML configuration loading and validation.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_AGENT_URL = "https://millions-screeching-vultur.mastra.cloud/api/agents/weatherAgent/stream"
DEFAULT_STORAGE_PATH = "~/.weather-chat/storage.json"
DEFAULT_LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


@dataclass
class ChatConfig:
    """
    Weather Chat configuration.

    Can be loaded from a YAML file or created programmatically.
    """
    # Agent endpoint and request parameters
    agent_url: str = DEFAULT_AGENT_URL
    run_id: str = "weatherAgent"
    resource_id: str = "weatherAgent"
    thread_id: Optional[str] = None  # None = use the current session id
    max_retries: int = 2
    max_steps: int = 5
    temperature: float = 0.5
    top_p: float = 1.0
    runtime_context: Dict[str, Any] = field(default_factory=dict)
    extra_headers: Dict[str, str] = field(default_factory=dict)
    timeout: float = 120.0

    # Storage
    storage_path: str = DEFAULT_STORAGE_PATH
    codec_key: str = "weather-chat-app"

    # Logging
    log_level: str = "INFO"
    log_file: str = ""
    log_format: str = DEFAULT_LOG_FORMAT
    log_max_bytes: int = 10485760  # 10MB
    log_backup_count: int = 3

    # Rate limiting (messages per rolling window)
    rate_limit_enabled: bool = True
    rate_limit_max_requests: int = 10
    rate_limit_window_seconds: float = 60.0

    # Retry when opening the stream
    retry_max_attempts: int = 1
    retry_backoff_base: float = 1.0
    retry_backoff_max: float = 30.0

    def __post_init__(self) -> None:
        if not self.agent_url:
            raise ValueError("agent_url must not be empty")
        if self.timeout <= 0:
            raise ValueError("timeout must be greater than 0")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if not self.codec_key:
            raise ValueError("codec_key must not be empty")

    @classmethod
    def load(cls, path: str) -> "ChatConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: Path to the YAML configuration file

        Returns:
            ChatConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            yaml.YAMLError: If config file is invalid YAML
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatConfig":
        """
        Create configuration from a dictionary.

        Args:
            data: Configuration dictionary with optional ``agent``,
                ``storage``, ``logging``, ``rate_limit`` and ``retry`` sections

        Returns:
            ChatConfig instance
        """
        agent_cfg = data.get("agent", {})
        storage_cfg = data.get("storage", {})
        logging_cfg = data.get("logging", {})
        rate_limit_cfg = data.get("rate_limit", {})
        retry_cfg = data.get("retry", {})

        thread_id = agent_cfg.get("thread_id")

        return cls(
            agent_url=agent_cfg.get("url", DEFAULT_AGENT_URL),
            run_id=agent_cfg.get("run_id", "weatherAgent"),
            resource_id=agent_cfg.get("resource_id", "weatherAgent"),
            thread_id=str(thread_id) if thread_id is not None else None,
            max_retries=agent_cfg.get("max_retries", 2),
            max_steps=agent_cfg.get("max_steps", 5),
            temperature=agent_cfg.get("temperature", 0.5),
            top_p=agent_cfg.get("top_p", 1.0),
            runtime_context=agent_cfg.get("runtime_context", {}),
            extra_headers=agent_cfg.get("extra_headers", {}),
            timeout=agent_cfg.get("timeout", 120.0),
            storage_path=storage_cfg.get("path", DEFAULT_STORAGE_PATH),
            codec_key=storage_cfg.get("codec_key", "weather-chat-app"),
            log_level=logging_cfg.get("level", "INFO"),
            log_file=logging_cfg.get("file", ""),
            log_format=logging_cfg.get("format", DEFAULT_LOG_FORMAT),
            log_max_bytes=logging_cfg.get("max_bytes", 10485760),
            log_backup_count=logging_cfg.get("backup_count", 3),
            rate_limit_enabled=rate_limit_cfg.get("enabled", True),
            rate_limit_max_requests=rate_limit_cfg.get("max_requests", 10),
            rate_limit_window_seconds=rate_limit_cfg.get("window_seconds", 60.0),
            retry_max_attempts=retry_cfg.get("max_attempts", 1),
            retry_backoff_base=retry_cfg.get("backoff_base", 1.0),
            retry_backoff_max=retry_cfg.get("backoff_max", 30.0),
        )

    def get_storage_path(self) -> Path:
        """Storage file path with ``~`` expanded."""
        return Path(self.storage_path).expanduser()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary.

        Returns:
            Configuration as dictionary (same layout ``from_dict`` reads)
        """
        return {
            "agent": {
                "url": self.agent_url,
                "run_id": self.run_id,
                "resource_id": self.resource_id,
                "thread_id": self.thread_id,
                "max_retries": self.max_retries,
                "max_steps": self.max_steps,
                "temperature": self.temperature,
                "top_p": self.top_p,
                "runtime_context": self.runtime_context,
                "extra_headers": self.extra_headers,
                "timeout": self.timeout,
            },
            "storage": {
                "path": self.storage_path,
                "codec_key": self.codec_key,
            },
            "logging": {
                "level": self.log_level,
                "file": self.log_file,
                "format": self.log_format,
                "max_bytes": self.log_max_bytes,
                "backup_count": self.log_backup_count,
            },
            "rate_limit": {
                "enabled": self.rate_limit_enabled,
                "max_requests": self.rate_limit_max_requests,
                "window_seconds": self.rate_limit_window_seconds,
            },
            "retry": {
                "max_attempts": self.retry_max_attempts,
                "backoff_base": self.retry_backoff_base,
                "backoff_max": self.retry_backoff_max,
            },
        }

    def save(self, path: str) -> None:
        """
        Save configuration to a YAML file.

        Args:
            path: Path to save the configuration file
        """
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)
