from __future__ import annotations

import re

SCHOOL_DAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday")

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
SUBCLASS_LETTER_PATTERN = re.compile(r"^[A-Z]$")

MINUTES_PER_DAY = 24 * 60


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def format_minutes(total_minutes: int) -> str:
    if not 0 <= total_minutes < MINUTES_PER_DAY:
        raise ValueError(f"{total_minutes} minutes is outside a single day")
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"
