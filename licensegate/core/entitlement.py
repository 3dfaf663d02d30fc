"""Entitlement time accounting.

Pure arithmetic over a license product's grant window and a product's
freeze state. All values are integer seconds since the Unix epoch.
"""
from dataclasses import dataclass

# Remaining time reported for privileged subjects
UNBOUNDED_SECONDS = 2 ** 63 - 1


@dataclass(frozen=True)
class Remaining:
    elapsed: int
    expired: bool
    remaining_seconds: int


def remaining(duration: int, started_at: int, now: int) -> Remaining:
    """Elapsed time in the grant window and whether it has run out.

    A window that starts in the future counts as zero elapsed.
    """
    if duration < 0:
        raise ValueError("duration must be non-negative")
    elapsed = max(0, now - started_at)
    return Remaining(
        elapsed=elapsed,
        expired=elapsed >= duration,
        remaining_seconds=max(0, duration - elapsed),
    )


def frozen_seconds(frozen_at: int, now: int) -> int:
    """How long a product has been frozen, saturating at zero"""
    return max(0, now - frozen_at)


def compensate(started_at: int, frozen_for: int) -> int:
    """Grant-window start after neutralizing time lost to a freeze"""
    if frozen_for < 0:
        raise ValueError("frozen duration must be non-negative")
    return started_at + frozen_for
