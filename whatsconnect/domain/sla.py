from dataclasses import dataclass
from datetime import datetime

DEFAULT_THRESHOLD_MINUTES = 120
DEFAULT_URGENT_WINDOW_MINUTES = 30


@dataclass(frozen=True, slots=True)
class SlaWindow:
    overdue: bool
    minutes: int
    urgent: bool
    text: str


def elapsed_minutes(since: datetime, now: datetime) -> int:
    return int((now - since).total_seconds() // 60)


def compute_sla_window(
    last_contacted_at: datetime | None,
    now: datetime,
    threshold_minutes: int = DEFAULT_THRESHOLD_MINUTES,
    urgent_window_minutes: int = DEFAULT_URGENT_WINDOW_MINUTES,
) -> SlaWindow | None:
    if last_contacted_at is None:
        return None

    remaining = threshold_minutes - elapsed_minutes(last_contacted_at, now)
    if remaining <= 0:
        overdue_by = abs(remaining)
        return SlaWindow(
            overdue=True,
            minutes=overdue_by,
            urgent=True,
            text=f"{overdue_by}m overdue",
        )
    if remaining <= urgent_window_minutes:
        return SlaWindow(
            overdue=False,
            minutes=remaining,
            urgent=True,
            text=f"{remaining}m remaining",
        )

    hours, minutes = divmod(remaining, 60)
    return SlaWindow(
        overdue=False,
        minutes=remaining,
        urgent=False,
        text=f"{hours}h {minutes}m remaining",
    )
