"""
BandLy Client Configuration Management
"""

import os
import json
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv


DEFAULT_API_BASE_URL = "http://localhost:8080"


@dataclass
class BandlyConfig:
    """Configuration for the BandLy client"""

    # API settings
    api_base_url: str = DEFAULT_API_BASE_URL
    timeout: float = 60.0  # seconds, applied to every request

    # Output settings
    output_format: str = "text"  # text, json
    verbose: bool = False

    # Logging
    log_level: str = "WARNING"
    log_file: Optional[str] = None
    json_logs: bool = False

    # Local durable store (token, feedback state, analytics session)
    storage_file: str = "storage.json"

    # Paths
    config_dir: str = field(default_factory=lambda: str(Path.home() / ".bandly"))

    def __post_init__(self):
        """Initialize paths and directories"""
        Path(self.config_dir).mkdir(parents=True, exist_ok=True)

        if not os.path.isabs(self.storage_file):
            self.storage_file = str(Path(self.config_dir) / self.storage_file)

        self.api_base_url = self.api_base_url.rstrip("/")

    def load_from_file(self, config_path: str) -> None:
        """Load configuration from JSON file"""
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
                for key, value in data.items():
                    if hasattr(self, key):
                        setattr(self, key, value)
            self.api_base_url = self.api_base_url.rstrip("/")

    @classmethod
    def load_default(cls, env_file: Optional[str] = None) -> "BandlyConfig":
        """Load defaults, then config.json, then .env, then environment variables"""
        load_dotenv(env_file)

        config = cls(config_dir=os.environ.get("BANDLY_CONFIG_DIR", str(Path.home() / ".bandly")))
        default_config_path = Path(config.config_dir) / "config.json"
        if default_config_path.exists():
            config.load_from_file(str(default_config_path))

        # Override with environment variables
        config._load_from_env()

        return config

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        env_mappings = {
            "BANDLY_API_URL": "api_base_url",
            "BANDLY_TIMEOUT": ("timeout", float),
            "BANDLY_LOG_LEVEL": "log_level",
            "BANDLY_LOG_FILE": "log_file",
            "BANDLY_JSON_LOGS": ("json_logs", lambda x: x.lower() == "true"),
            "BANDLY_VERBOSE": ("verbose", lambda x: x.lower() == "true"),
        }

        for env_var, mapping in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                if isinstance(mapping, tuple):
                    attr, converter = mapping
                    setattr(self, attr, converter(value))
                else:
                    setattr(self, mapping, value)

        self.api_base_url = self.api_base_url.rstrip("/")

    @property
    def is_local_api(self) -> bool:
        """True when the API runs on this machine (analytics is skipped then)"""
        return any(host in self.api_base_url for host in ("://localhost", "://127.0.0.1"))
