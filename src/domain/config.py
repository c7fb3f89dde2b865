"""Application settings loaded from a TOML file."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any
import tomllib

from domain.aggregation import NEVER_PLAYED
from domain.protocol import PlayerImageMode, Theme

DEFAULT_DB_URL = "sqlite:///data/game_master.db"
DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "configs" / "app.toml"


@dataclass(frozen=True)
class AppConfig:
    """Storage location plus first-run defaults for user settings."""

    db_url: str = DEFAULT_DB_URL
    never_played_label: str = NEVER_PLAYED
    default_theme: Theme = Theme.DARK
    default_auto_start_timer: bool = True
    default_player_image_mode: PlayerImageMode = PlayerImageMode.AVATAR
    file_path: Path | None = None

    def as_config_json(self) -> dict[str, Any]:
        return {
            "db_url": self.db_url,
            "never_played_label": self.never_played_label,
            "default_theme": self.default_theme.value,
            "default_auto_start_timer": self.default_auto_start_timer,
            "default_player_image_mode": self.default_player_image_mode.value,
        }


def load_app_config(file_path: Path | None = None) -> AppConfig:
    """Read settings from ``file_path``; missing files fall back to defaults."""
    path = file_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        if file_path is not None:
            raise FileNotFoundError(f"Config file not found: {path}")
        return AppConfig()
    if not path.is_file():
        raise ValueError(f"Config path is not a file: {path}")

    with path.open("rb") as file:
        raw = tomllib.load(file)
    return _parse_app_config(raw, path)


def _parse_app_config(raw: dict[str, Any], file_path: Path) -> AppConfig:
    storage_raw = raw.get("storage", {})
    display_raw = raw.get("display", {})
    defaults_raw = raw.get("defaults", {})

    db_url = str(storage_raw.get("db_url", DEFAULT_DB_URL)).strip()
    if not db_url:
        raise ValueError(f"{file_path}: [storage].db_url must not be empty")

    never_played_label = str(display_raw.get("never_played_label", NEVER_PLAYED)).strip()
    if not never_played_label:
        raise ValueError(f"{file_path}: [display].never_played_label must not be empty")

    try:
        theme = Theme(defaults_raw.get("theme", Theme.DARK.value))
    except ValueError as exc:
        raise ValueError(f"{file_path}: [defaults].theme must be 'dark' or 'light'") from exc

    try:
        image_mode = PlayerImageMode(
            defaults_raw.get("default_player_image_mode", PlayerImageMode.AVATAR.value)
        )
    except ValueError as exc:
        choices = ", ".join(mode.value for mode in PlayerImageMode)
        raise ValueError(
            f"{file_path}: [defaults].default_player_image_mode must be one of: {choices}"
        ) from exc

    auto_start_timer = defaults_raw.get("auto_start_timer", True)
    if not isinstance(auto_start_timer, bool):
        raise ValueError(f"{file_path}: [defaults].auto_start_timer must be a boolean")

    return AppConfig(
        db_url=db_url,
        never_played_label=never_played_label,
        default_theme=theme,
        default_auto_start_timer=auto_start_timer,
        default_player_image_mode=image_mode,
        file_path=file_path,
    )


__all__ = ["DEFAULT_CONFIG_PATH", "DEFAULT_DB_URL", "AppConfig", "load_app_config"]
