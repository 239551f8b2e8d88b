"""Editor settings loaded from an optional TOML file."""

from pathlib import Path
from tomllib import load
from typing import TypedDict

from schema.mutations import PrimaryKeyType
from schema.types import CompilerTarget


class Settings(TypedDict):
    """Tunable editor behaviour."""

    debounce_seconds: float  # Quiescence window before compiling
    position_offset: float  # Offset applied to duplicated tables
    primary_key_type: PrimaryKeyType  # Type of the seeded ``id`` column
    base_class: str  # Declarative base class name in generated source
    target: CompilerTarget  # Source format documents compile to


DEFAULT_SETTINGS: Settings = {
    "debounce_seconds": 0.5,
    "position_offset": 10.0,
    "primary_key_type": "uuid",
    "base_class": "Base",
    "target": "sqlalchemy",
}

SETTINGS_FILE = "erd.toml"


def parse_settings(table: dict[str, object]) -> Settings:
    """Merge a settings table over the defaults, validating every key."""
    if unknown := table.keys() - DEFAULT_SETTINGS.keys():
        msg = f"Unknown settings: {', '.join(sorted(unknown))}"
        raise ValueError(msg)

    settings: Settings = {**DEFAULT_SETTINGS}
    for key in ("debounce_seconds", "position_offset"):
        if key in table:
            value = table[key]
            if not isinstance(value, int | float) or isinstance(value, bool) or value < 0:
                msg = f"Setting {key} must be a non-negative number, got {value!r}"
                raise ValueError(msg)
            settings[key] = float(value)

    match table.get("primary_key_type", settings["primary_key_type"]):
        case "uuid" | "number" as key_type:
            settings["primary_key_type"] = key_type
        case other:
            msg = f"Unknown primary key type: {other}"
            raise ValueError(msg)

    if "base_class" in table:
        value = table["base_class"]
        if not isinstance(value, str) or not value.isidentifier():
            msg = f"Base class must be a Python identifier, got {value!r}"
            raise ValueError(msg)
        settings["base_class"] = value

    match table.get("target", settings["target"]):
        case "sqlalchemy" | "mongodb" as target:
            settings["target"] = target
        case other:
            msg = f"Unknown compiler target: {other}"
            raise ValueError(msg)

    return settings


def load_settings(path: Path | None = None) -> Settings:
    """Load settings from the ``[erd]`` table of a TOML file.

    Without a path, ``erd.toml`` in the working directory is used when present.
    """
    if path is None:
        path = Path.cwd() / SETTINGS_FILE
        if not path.exists():
            return {**DEFAULT_SETTINGS}
    with path.open("rb") as f:
        return parse_settings(load(f).get("erd", {}))
