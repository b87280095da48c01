# Planner engine: configuration
# Defaults below; override via planner.yaml or environment variables.

import os
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "zurabase" / "planner.yaml"

ENV_API_ENDPOINT = "ZURABASE_API_ENDPOINT"
ENV_API_TOKEN = "ZURABASE_API_TOKEN"


@dataclass
class PlannerConfig:
    """Runtime configuration for the planner engine."""

    # Backend
    api_base: str = ""
    api_token: Optional[str] = None
    request_timeout_secs: float = 10.0

    # Sync behaviour
    autosave_debounce_ms: int = 2000
    discard_stale_confirmations: bool = True

    # Lanes
    lane_colors: List[str] = field(
        default_factory=lambda: ["red", "blue", "green", "purple", "orange"]
    )
    default_lane_color: str = "#E5E7EB"

    log_level: str = "INFO"

    def apply_env(self):
        """Environment variables win over file values."""
        endpoint = os.environ.get(ENV_API_ENDPOINT)
        if endpoint:
            self.api_base = endpoint
        token = os.environ.get(ENV_API_TOKEN)
        if token:
            self.api_token = token
        self.api_base = self.api_base.rstrip("/")

    def require_api_base(self) -> str:
        if not self.api_base:
            raise ConfigError(
                f"Planner API endpoint is not set.\n"
                f"Set it:  export {ENV_API_ENDPOINT}=http://localhost:8080\n"
                f"or add `api_base:` to {CONFIG_PATH}"
            )
        return self.api_base

    @property
    def autosave_debounce_secs(self) -> float:
        return self.autosave_debounce_ms / 1000.0

    @classmethod
    def load(cls, path: Optional[str] = None) -> "PlannerConfig":
        """Load config from YAML file, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                if not isinstance(data, dict):
                    raise TypeError(f"expected a mapping, got {type(data).__name__}")
                cfg = cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
            except (yaml.YAMLError, TypeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.apply_env()
        return cfg
