"""ML helper functions."""

from __future__ import annotations


def estimate_remaining_time(progress: float, *, tick_seconds: float, max_step: float) -> str:
    """Convert aggregate progress into a rough ETA string from the expected step size."""
    if progress >= 100:
        return "0s"
    expected_step = max_step / 2
    if expected_step <= 0:
        return "unknown"
    remaining_ticks = (100 - max(0.0, progress)) / expected_step
    seconds = int(round(remaining_ticks * tick_seconds))
    if seconds >= 120:
        return f"~{seconds // 60}m"
    return f"~{seconds}s"
