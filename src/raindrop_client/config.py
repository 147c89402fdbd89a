import json
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict

API_HOST = "https://api.raindrop.io"
AUTH_HOST = "https://raindrop.io"
DEFAULT_TIMEOUT = 5.0

AUTHORIZATION_CODE_GRANT = "authorization_code"
REFRESH_TOKEN_GRANT = "refresh_token"


class ClientConfig(BaseModel):
    """OAuth app registration plus the two service hosts. Never mutated."""

    model_config = ConfigDict(frozen=True)

    client_id: str
    client_secret: str
    redirect_uri: str
    api_host: str = API_HOST
    auth_host: str = AUTH_HOST
    timeout: float = DEFAULT_TIMEOUT
    authorization_grant_type: str = AUTHORIZATION_CODE_GRANT
    refresh_grant_type: str = REFRESH_TOKEN_GRANT


class Config(BaseModel):
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    redirect_uri: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None

    def client_config(self) -> Optional[ClientConfig]:
        if not (self.client_id and self.client_secret and self.redirect_uri):
            return None
        return ClientConfig(
            client_id=self.client_id,
            client_secret=self.client_secret,
            redirect_uri=self.redirect_uri,
        )


CONFIG_DIR = Path.home() / ".config" / "raindrop-client"
CONFIG_FILE = CONFIG_DIR / "config.json"


def load_config() -> Config:
    """Load configuration from disk."""
    if not CONFIG_FILE.exists():
        return Config()
    try:
        with open(CONFIG_FILE, "r") as f:
            return Config.model_validate(json.load(f))
    except (OSError, ValueError):
        return Config()


def save_config(config: Config) -> None:
    """Save configuration to disk with secure permissions."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    # Set directory permissions to 700 (drwx------)
    CONFIG_DIR.chmod(0o700)

    # Create file with 600 permissions (rw-------)
    if not CONFIG_FILE.exists():
        CONFIG_FILE.touch(mode=0o600)
    else:
        CONFIG_FILE.chmod(0o600)

    with open(CONFIG_FILE, "w") as f:
        json.dump(config.model_dump(exclude_none=True), f, indent=2)


def delete_config() -> None:
    """Delete the configuration file."""
    if CONFIG_FILE.exists():
        CONFIG_FILE.unlink()
