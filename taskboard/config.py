# Taskboard configuration
# Override paths and endpoints via a YAML file (TASKBOARD_CONFIG) or env vars.
# Secrets never live in the file: it names the environment variables instead.

import logging
import os
import yaml
from pathlib import Path
from dataclasses import dataclass, fields
from typing import Optional

logger = logging.getLogger(__name__)

CONFIG_PATH = Path("taskboard.yaml")


@dataclass
class Config:
    """Runtime configuration for the board service."""

    # Storage
    db_path: str = "~/.local/share/taskboard/taskboard.db"

    # API auth: shared secret expected in X-API-Key
    api_secret_env: str = "TASKBOARD_API_SECRET"

    # Assignee suggestions (OpenAI-compatible chat completions)
    suggestion_url: str = "https://api.openai.com/v1/chat/completions"
    suggestion_model: str = "gpt-3.5-turbo"
    suggestion_api_key_env: str = "OPENAI_API_KEY"
    suggestion_timeout: float = 10.0

    # Event relay
    event_webhook_url: Optional[str] = None  # None = in-process subscribers only
    event_webhook_timeout: float = 2.0
    event_history: int = 200
    event_history_topics: int = 1000

    log_level: str = "INFO"

    @property
    def api_secret(self) -> str:
        return os.environ.get(self.api_secret_env, "")

    @property
    def suggestion_api_key(self) -> Optional[str]:
        return os.environ.get(self.suggestion_api_key_env) or None

    def resolve_paths(self):
        """Expand ~ and apply environment overrides."""
        env_db = os.environ.get("TASKBOARD_DB")
        if env_db:
            self.db_path = env_db
        self.db_path = str(Path(self.db_path).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """Load config from YAML file, falling back to defaults."""
        path = path or os.environ.get("TASKBOARD_CONFIG")
        cfg_path = Path(path) if path else CONFIG_PATH
        known = {f.name for f in fields(cls)}
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if k in known})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg
