"""Configuration loading for the datamodel provisioning tools."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

import keyring

from dmlib.models import PollConfig


SERVICE_NAME = "dmlib"
KEY_NAME = "api_token"

TOKEN_ENV_VAR = "DMLIB_TOKEN"
BASE_URL_ENV_VAR = "DMLIB_BASE_URL"

DEFAULT_CONFIG_PATH = Path("config/dmlib.json")


def get_api_token() -> str:
    """Get the API token: system keyring first, then ``DMLIB_TOKEN`` env var.

    Returns:
        Token string, exactly as stored.

    Raises:
        RuntimeError: If no token found anywhere, with actionable instructions.
    """
    token = keyring.get_password(SERVICE_NAME, KEY_NAME)
    if token:
        return token

    token = os.environ.get(TOKEN_ENV_VAR)
    if token:
        return token

    raise RuntimeError(
        "API token not found.\n"
        "Set it with: dmlib config set-token YOUR_TOKEN\n"
        f"Or: export {TOKEN_ENV_VAR}=your-token"
    )


@dataclass
class ClientConfig:
    """Connection and polling settings shared by the REST client, the
    uploader and the build poller.

    Durations are in seconds.
    """

    base_url: str
    token: str
    request_timeout: float = 30.0
    upload_timeout: float = 300.0
    poll_interval: float = 10.0
    poll_timeout: float = 300.0

    def __post_init__(self) -> None:
        self.base_url = self.base_url.rstrip("/")

    @property
    def authorization(self) -> str:
        """Value for the ``Authorization`` header."""
        if self.token.lower().startswith("bearer "):
            return self.token
        return f"Bearer {self.token}"

    def poll_config(self) -> PollConfig:
        return PollConfig(interval=self.poll_interval, timeout=self.poll_timeout)


def load_client_config(
    config_path: Path | None = None,
    base_url: str | None = None,
    token: str | None = None,
) -> ClientConfig:
    """Load client configuration from JSON, falling back to defaults.

    Reads ``config/dmlib.json`` when *config_path* is ``None``; a missing
    file is not an error.  The base URL is resolved from, in increasing
    priority: the file, ``DMLIB_BASE_URL``, the *base_url* argument.  The
    token is never read from the file; it comes from *token* or
    :func:`get_api_token`.

    Raises:
        RuntimeError: If no base URL or token can be resolved.
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    data: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            data = json.load(f)

    field_names = {f.name for f in ClientConfig.__dataclass_fields__.values()}
    kwargs = {k: v for k, v in data.items() if k in field_names and k != "token"}

    env_base_url = os.environ.get(BASE_URL_ENV_VAR)
    if env_base_url:
        kwargs["base_url"] = env_base_url
    if base_url:
        kwargs["base_url"] = base_url

    if not kwargs.get("base_url"):
        raise RuntimeError(
            "Server address not configured.\n"
            f"Pass --base-url, export {BASE_URL_ENV_VAR}=https://host:port, "
            f"or add \"base_url\" to {config_path}"
        )

    kwargs["token"] = token or get_api_token()
    return ClientConfig(**kwargs)
