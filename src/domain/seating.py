import re
from typing import List, Tuple

DEFAULT_ROW = "A"

_LABEL_PATTERN = re.compile(r"(\d+)")


def seat_labels(seat_count: int, row: str = DEFAULT_ROW) -> List[str]:
    """
    Labels for a freshly provisioned show: A1, A2, ... A<seat_count>.
    """
    if seat_count < 1:
        raise ValueError("seat_count must be at least 1")
    return [f"{row}{number}" for number in range(1, seat_count + 1)]


def seat_label_sort_key(label: str) -> Tuple:
    """
    Natural ordering key, so A2 sorts before A10.

    Digit runs compare numerically, everything else case-insensitively.
    """
    parts = _LABEL_PATTERN.split(label)
    return tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part.lower())
        for part in parts
        if part != ""
    )
