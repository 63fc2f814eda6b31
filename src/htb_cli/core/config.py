"""Application configuration.

- Environment variables (prefix `HTB_CLI_`) and `.env` files, read with
  pydantic-settings.
- The project `.env` is read first, then the per-user `.env` written by
  `htb-cli doctor setup-token`.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from htb_cli import __version__


def get_user_config_dir() -> Path:
    """Per-user configuration directory (cross-platform, no extra dependency)."""

    if sys.platform.startswith("win"):
        base = Path(os.environ.get("APPDATA", str(Path.home())))
        return base / "htb-cli"
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "htb-cli"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "htb-cli"
    return Path.home() / ".config" / "htb-cli"


def get_user_env_file() -> Path:
    return get_user_config_dir() / ".env"


def _parse_env_lines(text: str) -> dict[str, str]:
    data: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key:
            data[key] = value
    return data


def write_user_env_vars(values: dict[str, str], *, env_path: Path | None = None) -> Path:
    """Write or update variables in the user's global .env."""

    env_path = env_path or get_user_env_file()
    env_path.parent.mkdir(parents=True, exist_ok=True)

    existing: dict[str, str] = {}
    if env_path.exists():
        existing = _parse_env_lines(env_path.read_text(encoding="utf-8"))

    existing.update({k: v for k, v in values.items() if v is not None})

    lines = ["# htb-cli user config (.env)"]
    for key in sorted(existing.keys()):
        lines.append(f"{key}={existing[key]}")
    env_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    if not sys.platform.startswith("win"):
        env_path.chmod(0o600)
    return env_path


class AppSettings(BaseSettings):
    """Central configuration for the CLI and adapters."""

    model_config = SettingsConfigDict(
        env_prefix="HTB_CLI_",
        extra="ignore",
        case_sensitive=False,
        env_file=(".env", str(get_user_env_file())),
        env_file_encoding="utf-8",
    )

    api_token: str | None = Field(
        default=None,
        description="App token generated from the labs profile settings.",
    )
    api_base_url: str = Field(
        default="https://labs.hackthebox.com/api/v4",
        min_length=8,
        description="Base URL of the labs API.",
    )
    proxy: str | None = Field(
        default=None,
        description="HTTP(S) proxy for every request (e.g. http://127.0.0.1:8080).",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout per request (seconds).",
    )
    user_agent: str = Field(
        default=f"htb-cli/{__version__}",
        min_length=1,
        description="User-Agent sent with every request.",
    )

    poll_interval_seconds: float = Field(
        default=6.0,
        gt=0,
        description="Delay between two polls while a machine is provisioning.",
    )
    provisioning_timeout_seconds: float = Field(
        default=600.0,
        gt=0,
        description="Give up waiting for the machine address after this many seconds.",
    )

    discord_webhook_url: str | None = Field(
        default=None,
        description="Discord webhook notified after start/submit (optional).",
    )
    assume_yes: bool = Field(
        default=False,
        description="Answer yes to every confirmation (batch mode).",
    )
