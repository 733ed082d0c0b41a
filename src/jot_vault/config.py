"""Configuration module for Jot Vault."""

import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from jot_vault import __version__

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config, lives alongside the default vaults
_USER_ENV = Path.home() / ".jot-vault" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)


class JotVaultConfig(BaseModel):
    """Configuration for the vault engine and its server."""

    # Base directory for the project
    base_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("JOT_BASE_DIR", "."))
    )
    # Parent directory for newly chosen local vault locations
    vaults_dir: Path = Field(
        default_factory=lambda: Path(os.getenv("JOT_VAULTS_DIR", "data/vaults"))
    )
    # Vault registry database
    registry_path: Path = Field(
        default_factory=lambda: Path(
            os.getenv("JOT_REGISTRY_PATH", "data/db/registry.db")
        )
    )
    # Remote vault server
    api_url: str = Field(
        default_factory=lambda: os.getenv("JOT_API_URL", "http://localhost:4000")
    )
    # Bearer token for the remote backend. Injected, never persisted by us.
    auth_token: Optional[str] = Field(
        default_factory=lambda: os.getenv("JOT_AUTH_TOKEN") or None
    )
    # Seconds before a remote request gives up with RemoteUnavailable
    request_timeout: float = Field(
        default_factory=lambda: float(os.getenv("JOT_REQUEST_TIMEOUT", "10"))
    )
    # Quiescence window for coalescing body saves while a user types
    save_debounce: float = Field(
        default_factory=lambda: float(os.getenv("JOT_SAVE_DEBOUNCE", "0.5"))
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("JOT_SERVER_NAME", "jot-vault"))
    server_version: str = Field(default=__version__)
    log_level: str = Field(
        default_factory=lambda: os.getenv("JOT_LOG_LEVEL", "INFO").upper()
    )

    @model_validator(mode="after")
    def _validate_timing(self) -> "JotVaultConfig":
        """Reject timing values that would disable I/O or debouncing."""
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be > 0")
        if self.save_debounce < 0:
            raise ValueError("save_debounce must be >= 0")
        if self.save_debounce > 5:
            logger.warning(
                "save_debounce=%.1fs is long; unsaved edits may be lost on crash",
                self.save_debounce,
            )
        return self

    def get_absolute_path(self, path: Path) -> Path:
        """Convert a relative path to an absolute path based on base_dir."""
        if path.is_absolute():
            return path
        return self.base_dir / path

    def get_registry_url(self) -> str:
        """Get the database URL for the vault registry."""
        db_path = self.get_absolute_path(self.registry_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{db_path}"

    def get_vaults_dir(self) -> Path:
        """Get the absolute directory holding local vaults, creating it."""
        vaults_dir = self.get_absolute_path(self.vaults_dir)
        vaults_dir.mkdir(parents=True, exist_ok=True)
        return vaults_dir


# Create a global config instance
config = JotVaultConfig()
