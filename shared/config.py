"""
Application configuration.

Values come from ~/.config/bourbon-buddy/config.json, with environment
variables (optionally loaded from a .env file) taking precedence.
"""

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_CONFIG_DIR,
    CONFIG_FILENAME,
    DATABASE_FILENAME,
    DEFAULT_API_PORT,
)
from shared.crypto import CredentialManager, mask_secret

logger = logging.getLogger(__name__)

SECRET_FIELDS = ("mux_token_secret", "mux_webhook_secret", "serpapi_key")

# config field -> environment variable
ENV_OVERRIDES = {
    "mux_token_id": "MUX_TOKEN_ID",
    "mux_token_secret": "MUX_TOKEN_SECRET",
    "mux_webhook_secret": "MUX_WEBHOOK_SIGNING_SECRET",
    "serpapi_key": "SERPAPI_KEY",
    "database_path": "BB_DATABASE_PATH",
    "security_log_dir": "SECURITY_LOG_DIR",
    "port": "BB_PORT",
    "cors_origin": "BB_CORS_ORIGIN",
}


def default_config_path() -> Path:
    return Path(DEFAULT_CONFIG_DIR).expanduser() / CONFIG_FILENAME


@dataclass
class AppConfig:
    """
    Server configuration stored locally.

    Secrets are kept decrypted in memory and encrypted on disk
    (see `to_dict(encrypt=True)`).
    """
    mux_token_id: str = ""
    mux_token_secret: str = ""
    mux_webhook_secret: str = ""
    serpapi_key: str = ""
    database_path: Optional[str] = None
    security_log_dir: Optional[str] = None
    cors_origin: str = "*"
    port: int = DEFAULT_API_PORT
    is_encrypted: bool = False

    @property
    def resolved_database_path(self) -> Path:
        if self.database_path:
            return Path(self.database_path).expanduser()
        return Path(DEFAULT_CONFIG_DIR).expanduser() / DATABASE_FILENAME

    @property
    def mux_configured(self) -> bool:
        return bool(self.mux_token_id and self.mux_token_secret)

    def to_dict(self, encrypt: bool = True) -> Dict[str, Any]:
        """Convert config to dictionary, optionally encrypting secrets."""
        data = asdict(self)
        if encrypt and not self.is_encrypted:
            for key in SECRET_FIELDS:
                if data[key]:
                    data[key] = CredentialManager.encrypt(data[key])
            data['is_encrypted'] = True
        return data

    def to_public_dict(self) -> Dict[str, Any]:
        """Dictionary safe to return over the API: secrets masked."""
        data = asdict(self)
        for key in SECRET_FIELDS:
            data[key] = mask_secret(data[key])
        data.pop('is_encrypted', None)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AppConfig':
        """Create AppConfig from dictionary, decrypting if necessary."""
        field_names = {f.name for f in dataclasses.fields(cls)}
        filtered = {k: v for k, v in data.items() if k in field_names}

        if filtered.get('is_encrypted', False):
            for key in SECRET_FIELDS:
                value = filtered.get(key)
                if not value:
                    continue
                decrypted = CredentialManager.decrypt(value)
                if decrypted is None:
                    # Wrong machine: keep nothing rather than a ciphertext that looks like a key
                    logger.warning(f"Could not decrypt '{key}' from config; ignoring it")
                    filtered[key] = ""
                else:
                    filtered[key] = decrypted
            filtered['is_encrypted'] = False

        if 'port' in filtered and filtered['port'] is not None:
            filtered['port'] = int(filtered['port'])
        return cls(**filtered)

    def merge(self, updates: Dict[str, Any]) -> 'AppConfig':
        """Return a copy with `updates` applied. Masked secrets (ending in ****) are skipped."""
        data = asdict(self)
        for key, value in updates.items():
            if key not in data or key == 'is_encrypted' or value is None:
                continue
            if key in SECRET_FIELDS and isinstance(value, str) and value.endswith("****"):
                continue
            data[key] = value
        return AppConfig.from_dict(data)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)


def load_config(path: Optional[Path] = None, env_file: Optional[str] = None) -> AppConfig:
    """Load config from disk and apply environment overrides."""
    load_dotenv(env_file)
    path = Path(path) if path else default_config_path()

    config = AppConfig()
    if path.exists():
        try:
            config = AppConfig.from_dict(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid config file {path}: {e}; using defaults")

    overrides = {}
    for key, env_key in ENV_OVERRIDES.items():
        value = os.getenv(env_key)
        if value:
            overrides[key] = value
    if overrides:
        config = config.merge(overrides)
    return config


def save_config(config: AppConfig, path: Optional[Path] = None) -> Path:
    """Write config to disk with secrets encrypted."""
    path = Path(path) if path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(config.to_json(), encoding="utf-8")
    return path
