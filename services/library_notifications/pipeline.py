import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape
from pydantic import BaseModel, Field

from services.library_notifications.classifier import FEE_PER_DAY, Notice, NoticeKind, classify
from services.shared.mailer import EmailSender
from services.shared.records import BORROWED, Book, Borrowing, NotificationRecord, Profile, Student
from services.shared.store import DataAccessError, LibraryStore

CURRENCY = "₹"
LIBRARY_SIGNATURE = "SVIT Library"
LIBRARY_ACTION_URL = "/library"

logger = logging.getLogger("library-notifications")

templates = Environment(
    loader=FileSystemLoader(Path(__file__).parent / "templates"),
    autoescape=select_autoescape(["html"]),
)

TEMPLATE_NAMES = {
    NoticeKind.OVERDUE: "overdue.html",
    NoticeKind.DUE_SOON: "due_soon.html",
}


@dataclass
class Borrower:
    student: Student
    profile: Profile

    @property
    def email(self) -> str:
        return self.profile.email or ""


class RunSummary(BaseModel):
    success: bool = True
    emails_sent: int = Field(default=0, serialization_alias="emailsSent")
    notifications_created: int = Field(default=0, serialization_alias="notificationsCreated")

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)


@dataclass
class RunTally:
    emails_sent: list[str] = field(default_factory=list)
    staged: list[NotificationRecord] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0


def format_due_date(value: date) -> str:
    return f"{value.month}/{value.day}/{value.year}"


async def load_active_borrowings(store: LibraryStore) -> list[Borrowing]:
    borrowings = await store.active_borrowings()
    return [b for b in borrowings if b.status == BORROWED]


async def resolve_borrower(store: LibraryStore, borrowing: Borrowing) -> Optional[Borrower]:
    try:
        student = await store.get_student(borrowing.student_id)
        if not student:
            logger.info("No student %s for borrowing %s", borrowing.student_id, borrowing.id)
            return None
        profile = await store.get_profile(student.user_id)
    except DataAccessError as exc:
        logger.warning("Could not resolve borrower for borrowing %s: %s", borrowing.id, exc)
        return None

    if not profile or not profile.email:
        logger.info("No email for borrowing %s", borrowing.id)
        return None
    return Borrower(student=student, profile=profile)


def render_email(borrowing: Borrowing, borrower: Borrower, notice: Notice) -> tuple[str, str]:
    book = borrowing.book or Book(name="", code="")
    if notice.kind is NoticeKind.OVERDUE:
        subject = f'⚠️ OVERDUE: "{book.name}" - {CURRENCY}{notice.fee} fine accumulated'
    else:
        subject = f'📚 Reminder: "{book.name}" due in {notice.days_remaining} day(s)'

    html = templates.get_template(TEMPLATE_NAMES[notice.kind]).render(
        student_name=borrower.profile.name or "",
        book_name=book.name,
        book_code=book.code,
        due_date=format_due_date(borrowing.due_date),
        notice=notice,
        currency=CURRENCY,
        fee_per_day=FEE_PER_DAY,
        signature=LIBRARY_SIGNATURE,
    )
    return subject, html


def build_notification(borrowing: Borrowing, borrower: Borrower, notice: Notice) -> NotificationRecord:
    book_name = borrowing.book.name if borrowing.book else ""
    if notice.kind is NoticeKind.OVERDUE:
        return NotificationRecord(
            user_id=borrower.student.user_id,
            title="Book Overdue",
            message=f'"{book_name}" is {notice.days_overdue} days overdue. Fine: {CURRENCY}{notice.fee}',
            priority="high",
            action_url=LIBRARY_ACTION_URL,
        )
    return NotificationRecord(
        user_id=borrower.student.user_id,
        title="Book Due Soon",
        message=f'"{book_name}" is due in {notice.days_remaining} day(s). Please return on time.',
        priority="normal",
        action_url=LIBRARY_ACTION_URL,
    )


class Notifier:
    def __init__(self, sender: EmailSender):
        self.sender = sender

    async def notify(
        self, borrowing: Borrowing, borrower: Borrower, notice: Notice
    ) -> Optional[NotificationRecord]:
        """Email the borrower; return the in-app notification to stage.

        Returns None when the email could not be sent, so the borrower
        never gets an in-app notice for a reminder they did not receive.
        """
        subject, html = render_email(borrowing, borrower, notice)
        try:
            await self.sender.send(borrower.email, subject, html)
        except Exception:
            logger.exception("Failed to send email to %s for borrowing %s", borrower.email, borrowing.id)
            return None
        return build_notification(borrowing, borrower, notice)


class NotificationPipeline:
    """One run over every active loan: load, resolve, classify, notify, persist."""

    def __init__(self, store: LibraryStore, sender: EmailSender):
        self.store = store
        self.sender = sender
        self.notifier = Notifier(sender)

    async def run(self, now: datetime | None = None) -> RunSummary:
        now = now or datetime.now(timezone.utc)
        borrowings = await load_active_borrowings(self.store)
        logger.info("Found %d active borrowings", len(borrowings))

        tally = RunTally()
        for borrowing in borrowings:
            await self._process(borrowing, now, tally)

        created = await self._persist(tally.staged)
        logger.info(
            "Library notifications done: %d sent, %d staged, %d skipped, %d failed",
            len(tally.emails_sent),
            len(tally.staged),
            tally.skipped,
            tally.failed,
        )
        return RunSummary(emails_sent=len(tally.emails_sent), notifications_created=created)

    async def _process(self, borrowing: Borrowing, now: datetime, tally: RunTally) -> None:
        borrower = await resolve_borrower(self.store, borrowing)
        if not borrower:
            tally.skipped += 1
            return

        notice = classify(borrowing.due_at, now)
        if not notice.needs_notification:
            return

        notification = await self.notifier.notify(borrowing, borrower, notice)
        if notification is None:
            tally.failed += 1
            return
        tally.emails_sent.append(borrower.email)
        tally.staged.append(notification)

    async def _persist(self, staged: list[NotificationRecord]) -> int:
        if not staged:
            return 0
        try:
            await self.store.insert_notifications(staged)
        except DataAccessError:
            logger.exception("Error inserting %d notifications", len(staged))
            return 0
        return len(staged)

    async def aclose(self) -> None:
        await self.store.aclose()
        await self.sender.aclose()
