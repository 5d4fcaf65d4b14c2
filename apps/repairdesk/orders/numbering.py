from __future__ import annotations

import re
from typing import Iterable

_NUMBER_RE = re.compile(r"^(?P<prefix>[A-Za-z]+)-(?P<number>\d+)$")


def format_order_number(sequence: int, *, prefix: str = "OS", width: int = 3) -> str:
    """Render a sequence as the human-facing order number, e.g. ``OS-007``."""

    if sequence < 1:
        raise ValueError("Order sequence numbers start at 1")
    return f"{prefix}-{sequence:0{width}d}"


def parse_order_number(value: str, *, prefix: str = "OS") -> int | None:
    match = _NUMBER_RE.match(value.strip())
    if match is None or match.group("prefix") != prefix:
        return None
    return int(match.group("number"))


def highest_sequence(values: Iterable[str], *, prefix: str = "OS") -> int:
    """Largest sequence among existing order numbers, ``0`` when there are none."""

    numbers = [parse_order_number(value, prefix=prefix) for value in values]
    return max((number for number in numbers if number is not None), default=0)
