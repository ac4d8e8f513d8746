from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Characters that are not valid in NTFS file names.
INVALID_FILENAME_CHARS = frozenset('/?<>\\:*|"')

# Boolean true/false string values
_TRUE_VALUES = frozenset({"1", "true", "yes", "on", "y"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", "n"})


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(val) for key, val in value.items()}
    return value


def load_yaml_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping at the top level")
    return expand_env(data)


def strip_invalid_filename_chars(value: str) -> str:
    return "".join(ch for ch in value if ch not in INVALID_FILENAME_CHARS)


def parse_bool(value: Any) -> Optional[bool]:
    """Parse a loose boolean (``Yes``/``No``/``true``/``1``...).

    Returns None for anything that is not a recognized boolean.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return bool(value)
    lowered = str(value).strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def yes_no(value: bool) -> str:
    return "yes" if value else "no"


def is_relative_to(path: Path, parent: Path) -> bool:
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True
