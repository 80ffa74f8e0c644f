"""Pure slot arithmetic on "HH:mm" strings"""

from ...shared.validators import minutes_to_time, time_to_minutes


def generate_time_slots(start_time: str, end_time: str, duration_minutes: int = 30) -> list[dict]:
    """
    Cut [start_time, end_time) into consecutive fixed-length slots.

    A trailing remainder shorter than duration_minutes is dropped, so the
    result always has floor((end - start) / duration) entries.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    slots = []
    current = time_to_minutes(start_time)
    close = time_to_minutes(end_time)
    while current + duration_minutes <= close:
        slots.append(
            {
                "startTime": minutes_to_time(current),
                "endTime": minutes_to_time(current + duration_minutes),
            }
        )
        current += duration_minutes
    return slots


def intervals_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open [start, end) intervals overlap; touching endpoints do not"""
    return time_to_minutes(start_a) < time_to_minutes(end_b) and time_to_minutes(end_a) > time_to_minutes(
        start_b
    )


def duration_minutes(start_time: str, end_time: str) -> int:
    return time_to_minutes(end_time) - time_to_minutes(start_time)
