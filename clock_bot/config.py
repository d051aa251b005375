from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class MirrorConfig:
    token: str
    repo: str
    branch: str
    file_path: str
    debounce_seconds: float


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    tracked_voice_channel_id: int | None
    timezone: ZoneInfo
    timesheet_path: Path
    history_path: Path
    privileged_user_ids: frozenset[str]
    privileged_roles: frozenset[str]
    mirror: MirrorConfig | None
    keepalive_port: int | None
    ping_url: str | None


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _positive_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _positive_int(name, _required_env(name))


def _optional_int_env(name: str) -> int | None:
    value = (os.getenv(name) or "").strip()
    if not value:
        return None
    return _positive_int(name, value)


def _csv_env(name: str, default: str = "") -> frozenset[str]:
    raw = os.getenv(name, default)
    return frozenset(item.strip() for item in raw.split(",") if item.strip())


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = os.getenv(name, "UTC").strip() or "UTC"
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _mirror_from_env() -> MirrorConfig | None:
    repo = (os.getenv("GITHUB_REPO") or "").strip()
    if not repo:
        return None

    # A configured mirror without credentials must stop startup, not degrade silently.
    token = _required_env("GITHUB_TOKEN")
    if repo.count("/") != 1:
        raise ValueError("GITHUB_REPO must look like owner/name")

    debounce_raw = os.getenv("MIRROR_DEBOUNCE_SECONDS", "3").strip()
    try:
        debounce = float(debounce_raw)
    except ValueError as exc:
        raise ValueError("MIRROR_DEBOUNCE_SECONDS must be a number") from exc
    if debounce < 0:
        raise ValueError("MIRROR_DEBOUNCE_SECONDS must not be negative")

    return MirrorConfig(
        token=token,
        repo=repo,
        branch=os.getenv("GITHUB_BRANCH", "main").strip() or "main",
        file_path=os.getenv("GITHUB_FILE_PATH", "timesheet.json").strip() or "timesheet.json",
        debounce_seconds=debounce,
    )


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        tracked_voice_channel_id=_optional_int_env("TRACKED_VOICE_CHANNEL_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        timesheet_path=Path(os.getenv("TIMESHEET_PATH", "timesheet.json")),
        history_path=Path(os.getenv("HISTORY_PATH", "timesheetHistory.json")),
        privileged_user_ids=_csv_env("PRIVILEGED_USER_IDS"),
        privileged_roles=_csv_env("PRIVILEGED_ROLES", "Manager"),
        mirror=_mirror_from_env(),
        keepalive_port=_optional_int_env("PORT"),
        ping_url=(os.getenv("PING_URL") or "").strip() or None,
    )
