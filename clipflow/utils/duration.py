from typing import Optional

MIN_CLIP_DURATION = 1
MAX_CLIP_DURATION = 120

# Multi-clip runs aim for roughly a one-minute video.
MIN_TOTAL_DURATION = 55
MAX_TOTAL_DURATION = 65
TARGET_TOTAL_DURATION = 60


def is_valid_clip_duration(seconds: int) -> bool:
    return MIN_CLIP_DURATION <= seconds <= MAX_CLIP_DURATION


def calculate_total_duration(clip_count: int, per_clip_duration: int) -> int:
    return clip_count * per_clip_duration


def validation_message(clip_count: int, per_clip_duration: int) -> Optional[str]:
    """Return a user-facing problem with the requested durations, or None."""
    if not is_valid_clip_duration(per_clip_duration):
        return (
            f"Each clip must be between {MIN_CLIP_DURATION} and "
            f"{MAX_CLIP_DURATION} seconds"
        )
    total = calculate_total_duration(clip_count, per_clip_duration)
    if clip_count == 1:
        return None
    if total < MIN_TOTAL_DURATION:
        return f"Total duration must be at least {MIN_TOTAL_DURATION} seconds for multiple clips"
    if total > MAX_TOTAL_DURATION:
        return f"Total duration cannot exceed {MAX_TOTAL_DURATION} seconds for multiple clips"
    return None


def suggest_clip_count(per_clip_duration: int, target_duration: int = TARGET_TOTAL_DURATION) -> Optional[int]:
    """Clip count closest to target_duration that passes validation_message(), or None."""
    if not is_valid_clip_duration(per_clip_duration):
        return None
    estimate = max(1, round(target_duration / per_clip_duration))
    for count in (estimate, estimate - 1, estimate + 1):
        if count >= 1 and validation_message(count, per_clip_duration) is None:
            return count
    return None
