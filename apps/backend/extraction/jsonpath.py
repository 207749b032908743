"""
Minimal JSONPath-style traverser for parsed JSON values.

Supports the subset needed for JSON-LD extraction rules:
    $.title
    $.hiringOrganization.name
    $.jobLocation[0].address.addressLocality
    hiringOrganization.name        (leading $ is optional)

Wildcards, recursive descent, filters and functions are not supported.
Unsupported syntax resolves to nothing instead of raising.
"""

import re
from typing import Any, List, Optional, Tuple, Union

_SEGMENT = re.compile(r"\.([^.\[\]]+)|\[(\d+)\]")

Segment = Union[str, int]


def parse_path(path: str) -> Optional[List[Segment]]:
    """
    Split a path into property names and array indices.

    Returns None when the path uses unsupported syntax.
    """
    if not isinstance(path, str):
        return None

    normalized = path.strip()
    if normalized.startswith("$"):
        normalized = normalized[1:]
    if normalized in ("", "."):
        return []
    if not normalized.startswith((".", "[")):
        normalized = "." + normalized

    segments: List[Segment] = []
    pos = 0
    while pos < len(normalized):
        match = _SEGMENT.match(normalized, pos)
        if not match:
            return None
        if match.group(1) is not None:
            segments.append(match.group(1))
        else:
            segments.append(int(match.group(2)))
        pos = match.end()

    return segments


def find(value: Any, path: str) -> Tuple[bool, Any]:
    """
    Resolve a path against a JSON value.

    Returns (found, resolved). A JSON null leaf resolves as (True, None) so
    callers can tell "null" apart from "missing".
    """
    segments = parse_path(path)
    if segments is None:
        return False, None

    current = value
    for segment in segments:
        if isinstance(segment, int):
            if not isinstance(current, list) or segment >= len(current):
                return False, None
            current = current[segment]
        else:
            if not isinstance(current, dict) or segment not in current:
                return False, None
            current = current[segment]

    return True, current


def get(value: Any, path: str) -> Optional[Any]:
    """Return the value at path, or None if it does not exist."""
    found, resolved = find(value, path)
    return resolved if found else None


def get_string(value: Any, path: str) -> Optional[str]:
    resolved = get(value, path)
    return resolved if isinstance(resolved, str) else None


def get_number(value: Any, path: str) -> Optional[float]:
    resolved = get(value, path)
    # bool is an int subclass in Python but not a JSON number
    if isinstance(resolved, bool) or not isinstance(resolved, (int, float)):
        return None
    return float(resolved)


def get_int(value: Any, path: str) -> Optional[int]:
    number = get_number(value, path)
    if number is None or number != number or number in (float("inf"), float("-inf")):
        return None
    return int(number)


def get_bool(value: Any, path: str) -> Optional[bool]:
    resolved = get(value, path)
    return resolved if isinstance(resolved, bool) else None


def get_array(value: Any, path: str) -> Optional[List[Any]]:
    resolved = get(value, path)
    return resolved if isinstance(resolved, list) else None
