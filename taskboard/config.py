# Taskboard — configuration
# Defaults, overridden by an optional YAML file, overridden by environment.

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import List, Optional

import yaml

from .domain import DEFAULT_ALLOWED_ACTORS

CONFIG_PATH = Path(__file__).parent / "config.yaml"

DEFAULT_AUTH_HEADER = "Authorization"
DEFAULT_AUTH_PREFIX = "Bearer"
DEFAULT_STT_BASE_URL = "https://speechcoreai.com/api"


def _known(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


class ConfigError(Exception):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class SttSettings:
    """Third-party speech-to-text access."""

    token: str = ""
    auth_header: str = DEFAULT_AUTH_HEADER
    auth_prefix: str = DEFAULT_AUTH_PREFIX
    base_url: str = DEFAULT_STT_BASE_URL
    poll_interval_secs: float = 1.5
    timeout_secs: float = 60.0
    request_timeout_secs: float = 30.0

    def auth_value(self) -> str:
        return f"{self.auth_prefix} {self.token}" if self.auth_prefix else self.token


@dataclass
class BoardConfig:
    """Runtime configuration for the board server."""

    db_path: str = "~/.local/share/taskboard/board.db"
    host: str = "127.0.0.1"
    port: int = 3000
    allowed_actors: List[str] = field(default_factory=lambda: sorted(DEFAULT_ALLOWED_ACTORS))
    default_language: str = "en"
    stt: SttSettings = field(default_factory=SttSettings)

    def resolve_paths(self):
        self.db_path = str(Path(self.db_path).expanduser())

    def apply_env(self, env=None):
        """Environment variables win over file values."""
        env = os.environ if env is None else env

        if env.get("TASKBOARD_DB"):
            self.db_path = env["TASKBOARD_DB"]
        if env.get("TASKBOARD_ALLOWED_ACTORS"):
            self.allowed_actors = [
                a.strip() for a in env["TASKBOARD_ALLOWED_ACTORS"].split(",") if a.strip()
            ]
        if "SPEECHCORE_API_TOKEN" in env:
            self.stt.token = env["SPEECHCORE_API_TOKEN"].strip()
        if "SPEECHCORE_AUTH_HEADER" in env:
            self.stt.auth_header = env["SPEECHCORE_AUTH_HEADER"].strip() or DEFAULT_AUTH_HEADER
        if "SPEECHCORE_AUTH_PREFIX" in env:
            self.stt.auth_prefix = env["SPEECHCORE_AUTH_PREFIX"].strip() or DEFAULT_AUTH_PREFIX
        if env.get("SPEECHCORE_BASE_URL"):
            self.stt.base_url = env["SPEECHCORE_BASE_URL"].rstrip("/")

    def validate(self):
        if self.stt.poll_interval_secs <= 0:
            raise ConfigError("stt.poll_interval_secs must be positive")
        if self.stt.timeout_secs <= 0:
            raise ConfigError("stt.timeout_secs must be positive")
        if not self.allowed_actors:
            raise ConfigError("allowed_actors must not be empty")

    @classmethod
    def load(cls, path: Optional[str] = None, env=None) -> "BoardConfig":
        """Load config from YAML file, falling back to defaults."""
        env = os.environ if env is None else env
        cfg_path = Path(path or env.get("TASKBOARD_CONFIG") or CONFIG_PATH)
        cfg = cls()
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                stt = data.pop("stt", None) or {}
                cfg = cls(**_known(cls, data))
                cfg.stt = SttSettings(**_known(SttSettings, stt))
            except (OSError, yaml.YAMLError, TypeError, AttributeError):
                cfg = cls()
        cfg.apply_env(env)
        cfg.resolve_paths()
        cfg.validate()
        return cfg
