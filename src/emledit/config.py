"""Configuration stored in a YAML file."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from .store import StoreFormat

GLOBAL_CONFIG_DIR = Path.home() / ".config" / "emledit"
CONFIG_FILE = "config.yaml"


@dataclass
class EditConfig:
    """Settings for editing and viewing messages."""
    editor: str | None = None  # falls back to $VISUAL / $EDITOR
    tmpdir: str | None = None  # where surrogates are created
    delete_untag: bool = True  # untag messages replaced by an edit
    default_format: StoreFormat = StoreFormat.MBOX  # for new or empty mailboxes


def get_config_path() -> Path:
    """Get path to config.yaml.

    EMLEDIT_CONFIG overrides the default ~/.config/emledit/config.yaml.
    """
    env_path = os.environ.get("EMLEDIT_CONFIG")
    if env_path:
        return Path(env_path).expanduser()
    return GLOBAL_CONFIG_DIR / CONFIG_FILE


def load_config(path: Path | None = None) -> EditConfig:
    """Load config, using defaults for anything missing."""
    config_path = path or get_config_path()
    if not config_path.exists():
        return EditConfig()

    with open(config_path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"{config_path}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ValueError(f"{config_path}: expected a mapping of settings, got {type(data).__name__}")

    try:
        default_format = StoreFormat(data.get("default_format", StoreFormat.MBOX.value))
    except ValueError:
        formats = ", ".join(f.value for f in StoreFormat)
        raise ValueError(
            f"{config_path}: invalid default_format {data['default_format']!r} (use one of: {formats})"
        ) from None

    return EditConfig(
        editor=data.get("editor"),
        tmpdir=data.get("tmpdir"),
        delete_untag=bool(data.get("delete_untag", True)),
        default_format=default_format,
    )


def save_config(config: EditConfig, path: Path | None = None) -> None:
    """Save config to config.yaml."""
    config_path = path or get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data: dict = {}
    if config.editor:
        data["editor"] = config.editor
    if config.tmpdir:
        data["tmpdir"] = config.tmpdir
    data["delete_untag"] = config.delete_untag
    data["default_format"] = config.default_format.value

    with open(config_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)
