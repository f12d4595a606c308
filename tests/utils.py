import importlib
import os
import sys
from datetime import date
from pathlib import Path

from sqlmodel import Session

from services.shared.mailer import EmailSendError
from services.shared.sql_store import (
    BookRow,
    BorrowingRow,
    ProfileRow,
    SqlLibraryStore,
    StudentRow,
    new_id,
)


def reload_module(module_name: str):
    """Import a module fresh so env overrides take effect."""
    if module_name in sys.modules:
        del sys.modules[module_name]
    return importlib.import_module(module_name)


def configure_sqlite_env(env_var: str, path: Path) -> str:
    """Ensure a unique sqlite db path for a service and store it in env."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        path.unlink()
    url = f"sqlite:///{path}"
    os.environ[env_var] = url
    return url


def make_store(path: Path) -> SqlLibraryStore:
    store = SqlLibraryStore(configure_sqlite_env("LIBRARY_DB_URL", path))
    store.create_db()
    return store


def seed_loan(
    store: SqlLibraryStore,
    due_date: date,
    email: str | None = "student@example.com",
    name: str = "Asha",
    book_name: str = "Signals and Systems",
    status: str = "BORROWED",
    with_profile: bool = True,
    with_student: bool = True,
) -> BorrowingRow:
    with Session(store.engine) as session:
        book = BookRow(name=book_name, code=f"LIB-{book_name[:3].upper()}")
        student = StudentRow(user_id=new_id(), roll_number="21IT001")
        session.add(book)
        if with_student:
            session.add(student)
        if with_profile:
            session.add(ProfileRow(id=student.user_id, email=email, name=name))
        loan = BorrowingRow(book_id=book.id, student_id=student.id, due_date=due_date, status=status)
        session.add(loan)
        session.commit()
        session.refresh(loan)
        return loan


class FakeEmailSender:
    def __init__(self, reject: set[str] | None = None):
        self.reject = reject or set()
        self.sent: list[tuple[str, str, str]] = []
        self.closed = False

    async def send(self, to, subject, html):
        recipients = to if isinstance(to, list) else [to]
        if self.reject.intersection(recipients):
            raise EmailSendError("Failed to send email: recipient rejected", status_code=422)
        self.sent.append((to, subject, html))
        return {"id": f"email-{len(self.sent)}"}

    async def aclose(self):
        self.closed = True
