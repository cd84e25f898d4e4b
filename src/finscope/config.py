# ABOUTME: Runtime settings for Finscope, read from the environment
# ABOUTME: Resolves backend URL, API key, credentials and display options

import logging
import os
import subprocess
from collections.abc import Mapping
from pathlib import Path

from pydantic import Field, ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from finscope.exceptions import ConfigurationError, CredentialsNotFoundError

logger = logging.getLogger(__name__)

ENV_PREFIX = "FINSCOPE_"


class Settings(BaseSettings):
    """
    Connection and presentation settings.

    Each field reads from FINSCOPE_<FIELD> in the environment or a local
    .env file; empty variables count as unset.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    supabase_url: str
    supabase_key: str = Field(description="Public (anon) API key of the project")
    request_timeout: float = Field(default=15.0, gt=0)
    session_dir: Path = Field(default_factory=lambda: Path.home() / ".finscope")
    urgent_days: int = Field(default=3, ge=0, description="Due within this many days is urgent")

    @property
    def rest_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/rest/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/auth/v1"

    @property
    def session_file(self) -> Path:
        return self.session_dir / "session.json"


def load_settings() -> Settings:
    """
    Build Settings from FINSCOPE_* environment variables.

    Returns:
        Validated Settings

    Raises:
        ConfigurationError: if the backend URL or key is missing or a value is invalid
    """
    try:
        return Settings()
    except PydanticValidationError as e:
        missing = [
            f"{ENV_PREFIX}{str(err['loc'][0]).upper()}"
            for err in e.errors()
            if err["type"] == "missing"
        ]
        if missing:
            raise ConfigurationError(
                f"Missing required setting(s): {', '.join(missing)}"
            ) from e
        raise ConfigurationError(str(e)) from e


def get_credentials_from_1password() -> tuple[str, str]:
    """Retrieve login credentials from 1Password CLI."""
    try:
        email = subprocess.run(
            ["op", "read", "op://Private/finscope/username"],
            capture_output=True,
            text=True,
            check=True,
        ).stdout.strip()

        password = subprocess.run(
            ["op", "read", "op://Private/finscope/password"],
            capture_output=True,
            text=True,
            check=True,
        ).stdout.strip()

        return email, password
    except subprocess.CalledProcessError as e:
        raise CredentialsNotFoundError(
            f"Failed to retrieve credentials from 1Password: {e.stderr}"
        ) from e
    except FileNotFoundError:
        raise CredentialsNotFoundError(
            "1Password CLI (op) not found. "
            "Install it or set FINSCOPE_EMAIL/FINSCOPE_PASSWORD env vars."
        )


def get_credentials(env: Mapping[str, str] | None = None) -> tuple[str, str]:
    """Get login credentials from environment or 1Password."""
    env = os.environ if env is None else env
    email = env.get("FINSCOPE_EMAIL")
    password = env.get("FINSCOPE_PASSWORD")

    if email and password:
        logger.debug("Using credentials from environment variables")
        return email, password

    logger.debug("Attempting to retrieve credentials from 1Password")
    return get_credentials_from_1password()
