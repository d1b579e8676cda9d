from __future__ import annotations
from typing import Any, Iterable, Mapping, Optional

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def first_present(row: Mapping[str, Any], aliases: Iterable[str]) -> Optional[Any]:
    """
    Return the value of the first alias present in `row` with a non-empty value.
    Aliases are tried in order, so callers list the preferred key first.
    """
    for key in aliases:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def coerce_env_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_file_size(size: int) -> str:
    amount = float(size)
    for unit in _SIZE_UNITS:
        if amount < 1024 or unit == _SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(amount)} B"
            return f"{amount:.1f} {unit}"
        amount /= 1024
    return f"{size} B"
