"""Formatting helpers for report figures."""

import math


def attendance_rate(present: float, total: float) -> float:
    """Present share of total as a percentage rounded half-up to one decimal.

    Follows the same clamping as format_attendance_percentage.
    """
    if total <= 0 or present < 0:
        return 0.0
    if present > total:
        return 100.0
    return math.floor(present * 1000 / total + 0.5) / 10


def format_attendance_percentage(present: float, total: float) -> str:
    """Format present/total as a percentage string.

    Rounded to one decimal place with a trailing ".0" suppressed, so 87.0
    renders as "87%" and 87.5 as "87.5%". A zero total or negative input
    renders "0%"; present above total is clamped to "100%".
    """
    if total == 0:
        return "0%"
    if present < 0 or total < 0:
        return "0%"
    if present > total:
        return "100%"

    rounded = attendance_rate(present, total)
    if rounded == int(rounded):
        return f"{int(rounded)}%"
    return f"{rounded}%"
