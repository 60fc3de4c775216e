"""Environment variable helpers."""

from __future__ import annotations

import os
from pathlib import Path

ENV_PREFIX = "STRATBACKTEST_"


def _unquote(value: str) -> str:
    """Drop one pair of matching single or double quotes around a value."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _parse_dotenv_line(line: str, location: str) -> tuple[str, str] | None:
    """Parse one dotenv line into a key/value pair, or ``None`` for blanks and comments."""
    stripped = line.strip()
    if not stripped or stripped.startswith("#"):
        return None
    if stripped.startswith("export "):
        stripped = stripped[len("export ") :].strip()
    if "=" not in stripped:
        raise ValueError(f"Invalid dotenv line at {location}")

    key, raw_value = stripped.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError(f"Invalid dotenv key at {location}")
    return key, _unquote(raw_value.strip())


def load_dotenv(path: Path = Path(".env"), override: bool = False) -> dict[str, str]:
    """
    Load environment variables from a ``.env`` file.

    Existing process variables win unless ``override`` is set.

    Args:
        path: Dotenv file path. A missing file is not an error.
        override: Whether loaded values should overwrite existing environment variables.

    Returns:
        Mapping of environment variables that were set in this call.
    """
    resolved_path = path.expanduser().resolve()
    if not resolved_path.exists():
        return {}
    if not resolved_path.is_file():
        raise ValueError(f"Dotenv path is not a file: {resolved_path}")

    loaded: dict[str, str] = {}
    with resolved_path.open("r", encoding="utf-8") as handle:
        for line_number, raw_line in enumerate(handle, start=1):
            parsed = _parse_dotenv_line(raw_line, f"{resolved_path}:{line_number}")
            if parsed is None:
                continue
            key, value = parsed
            if not override and key in os.environ:
                continue
            os.environ[key] = value
            loaded[key] = value

    return loaded


def env_str(name: str, default: str) -> str:
    """Read ``STRATBACKTEST_<name>`` with a fallback."""
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def env_int(name: str, default: int, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Read an integer ``STRATBACKTEST_<name>`` setting.

    Raises:
        ValueError: If the value is not an integer or falls outside the bounds.
    """
    variable = f"{ENV_PREFIX}{name}"
    raw_value = os.getenv(variable, str(default))
    try:
        value = int(raw_value)
    except ValueError as exc:
        raise ValueError(f"Invalid {variable} value: {raw_value}") from exc
    if minimum is not None and value < minimum:
        raise ValueError(f"{variable} must be >= {minimum}.")
    if maximum is not None and value > maximum:
        raise ValueError(f"{variable} must be <= {maximum}.")
    return value
