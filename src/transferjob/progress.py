from __future__ import annotations

from dataclasses import dataclass

from .models import Phase


@dataclass(frozen=True, slots=True)
class ProgressWindow:
    lo: float
    hi: float

    def at(self, ratio_value: float) -> float:
        clamped = max(0.0, min(1.0, ratio_value))
        return self.lo + clamped * (self.hi - self.lo)


PHASE_WINDOWS: dict[Phase, ProgressWindow] = {
    Phase.CLEANING: ProgressWindow(0.00, 0.10),
    Phase.UPLOADING: ProgressWindow(0.10, 0.85),
    Phase.TRIGGERING: ProgressWindow(0.85, 0.90),
    Phase.POLLING: ProgressWindow(0.90, 1.00),
}

# Polling only ever creeps toward this value; 1.0 is reserved for `done`.
POLL_CEILING = 0.99


def ratio(numerator: int, total: int) -> float:
    # nothing to do completes the window immediately
    if total <= 0:
        return 1.0
    return max(0.0, min(1.0, numerator / total))


def window_progress(phase: Phase, ratio_value: float) -> float:
    return PHASE_WINDOWS[phase].at(ratio_value)


def window_progress_pair(phase: Phase, numerator: int, total: int) -> float:
    return window_progress(phase, ratio(numerator, total))


def poll_progress(attempt: int, max_attempts: int) -> float:
    """Global progress after ``attempt`` `processing` answers, kept below 0.99."""
    start = PHASE_WINDOWS[Phase.POLLING].lo
    if max_attempts <= 0:
        return start
    step = (POLL_CEILING - start) / max_attempts
    return start + step * max(0, min(attempt, max_attempts - 1))
