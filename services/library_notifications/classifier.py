import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

FEE_PER_DAY = 3
DUE_SOON_WINDOW_DAYS = 2

ONE_DAY = timedelta(days=1)


class NoticeKind(str, Enum):
    OVERDUE = "overdue"
    DUE_SOON = "due-soon"
    NONE = "none"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    days_overdue: int = 0
    fee: int = 0
    days_remaining: int = 0

    @property
    def needs_notification(self) -> bool:
        return self.kind is not NoticeKind.NONE


def classify(due_at: datetime, now: datetime) -> Notice:
    """Classify a loan by how far its due instant is from ``now``.

    Whole days are counted with a ceiling in both directions: a loan one
    hour late is one day overdue, a loan due in 36 hours has two days left.
    A loan due exactly ``now`` is due-soon with zero days remaining.
    """
    delta = due_at - now
    if delta < timedelta(0):
        days_overdue = math.ceil(-delta / ONE_DAY)
        return Notice(NoticeKind.OVERDUE, days_overdue=days_overdue, fee=days_overdue * FEE_PER_DAY)

    days_until_due = math.ceil(delta / ONE_DAY)
    if days_until_due <= DUE_SOON_WINDOW_DAYS:
        return Notice(NoticeKind.DUE_SOON, days_remaining=days_until_due)
    return Notice(NoticeKind.NONE)
