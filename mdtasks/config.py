"""Configuration loading for the task service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from mdtasks.task_constants import DEFAULT_TIMEZONE


class ConfigError(RuntimeError):
    """Raised when required configuration is missing or invalid."""


@dataclass(frozen=True)
class AppConfig:
    file_url: str | None
    github_token: str | None
    repo_path: Path | None
    file_path: str
    default_timezone: str
    save_attempts: int
    retry_backoff_seconds: float
    http_timeout_seconds: float
    service_token: str | None
    log_dir: Path | None
    log_level: str

    @property
    def store_kind(self) -> str:
        return "github" if self.file_url else "git"


def _read_dotenv_value(dotenv_path: Path, key: str) -> str | None:
    """Read a single key from a .env file without mutating the environment."""
    if not dotenv_path.is_file():
        return None
    try:
        content = dotenv_path.read_text(encoding="utf-8")
    except OSError:
        return None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        if stripped.startswith("export "):
            stripped = stripped[len("export ") :].strip()
        if "=" not in stripped:
            continue
        name, value = stripped.split("=", 1)
        if name.strip() != key:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
            value = value[1:-1]
        return value or None
    return None


def _read_setting(dotenv_path: Path, key: str) -> str | None:
    raw_value = os.environ.get(key)
    if raw_value is None:
        raw_value = _read_dotenv_value(dotenv_path, key)
    if raw_value is None:
        return None
    raw_value = raw_value.strip()
    return raw_value or None


def _read_positive_int(raw_value: str | None, *, default: int, key: str) -> int:
    if raw_value is None:
        return default
    try:
        value = int(raw_value)
    except ValueError:
        raise ConfigError(f"{key} must be an integer.") from None
    if value < 1:
        raise ConfigError(f"{key} must be at least 1.")
    return value


def _read_non_negative_float(
    raw_value: str | None, *, default: float, key: str
) -> float:
    if raw_value is None:
        return default
    try:
        value = float(raw_value)
    except ValueError:
        raise ConfigError(f"{key} must be a number.") from None
    if value < 0:
        raise ConfigError(f"{key} must not be negative.")
    return value


def _read_timezone(raw_value: str | None, *, key: str) -> str:
    if raw_value is None:
        return DEFAULT_TIMEZONE
    try:
        ZoneInfo(raw_value)
    except (ZoneInfoNotFoundError, ValueError):
        raise ConfigError(f"{key} must be an IANA timezone name.") from None
    return raw_value


def load_config() -> AppConfig:
    """Load configuration from the environment, falling back to `.env`."""
    dotenv_path = Path.cwd() / ".env"

    file_url = _read_setting(dotenv_path, "MDTASKS_FILE_URL")
    github_token = _read_setting(dotenv_path, "MDTASKS_GITHUB_TOKEN")
    raw_repo_path = _read_setting(dotenv_path, "MDTASKS_REPO_PATH")
    raw_log_dir = _read_setting(dotenv_path, "MDTASKS_LOG_DIR")

    if file_url and not github_token:
        raise ConfigError("MDTASKS_GITHUB_TOKEN is required with MDTASKS_FILE_URL.")
    if not file_url and not raw_repo_path:
        raise ConfigError(
            "Set MDTASKS_FILE_URL (GitHub) or MDTASKS_REPO_PATH (local git) "
            "to locate the task document."
        )

    return AppConfig(
        file_url=file_url,
        github_token=github_token,
        repo_path=Path(raw_repo_path).resolve() if raw_repo_path else None,
        file_path=_read_setting(dotenv_path, "MDTASKS_FILE_PATH") or "tasks.md",
        default_timezone=_read_timezone(
            _read_setting(dotenv_path, "MDTASKS_DEFAULT_TIMEZONE"),
            key="MDTASKS_DEFAULT_TIMEZONE",
        ),
        save_attempts=_read_positive_int(
            _read_setting(dotenv_path, "MDTASKS_SAVE_ATTEMPTS"),
            default=3,
            key="MDTASKS_SAVE_ATTEMPTS",
        ),
        retry_backoff_seconds=_read_non_negative_float(
            _read_setting(dotenv_path, "MDTASKS_RETRY_BACKOFF_SECONDS"),
            default=1.0,
            key="MDTASKS_RETRY_BACKOFF_SECONDS",
        ),
        http_timeout_seconds=_read_non_negative_float(
            _read_setting(dotenv_path, "MDTASKS_HTTP_TIMEOUT_SECONDS"),
            default=30.0,
            key="MDTASKS_HTTP_TIMEOUT_SECONDS",
        ),
        service_token=_read_setting(dotenv_path, "MDTASKS_SERVICE_TOKEN"),
        log_dir=Path(raw_log_dir) if raw_log_dir else None,
        log_level=(_read_setting(dotenv_path, "MDTASKS_LOG_LEVEL") or "INFO").upper(),
    )
