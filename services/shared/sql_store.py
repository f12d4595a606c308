import uuid
from datetime import date, datetime, timezone
from typing import Optional

from fastapi.concurrency import run_in_threadpool
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, create_engine, select

from services.shared.records import BORROWED, Book, Borrowing, NotificationRecord, Profile, Student
from services.shared.store import DataAccessError


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class BookRow(SQLModel, table=True):
    __tablename__ = "books"

    id: str = Field(default_factory=new_id, primary_key=True)
    name: str
    code: str = Field(index=True)


class BorrowingRow(SQLModel, table=True):
    __tablename__ = "book_borrowings"

    id: str = Field(default_factory=new_id, primary_key=True)
    book_id: str = Field(foreign_key="books.id")
    student_id: str = Field(index=True)
    due_date: date
    borrowed_at: datetime = Field(default_factory=utc_now)
    status: str = Field(default=BORROWED, index=True)


class StudentRow(SQLModel, table=True):
    __tablename__ = "students"

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(index=True)
    roll_number: Optional[str] = None


class ProfileRow(SQLModel, table=True):
    __tablename__ = "profiles"

    id: str = Field(primary_key=True)
    email: Optional[str] = None
    name: Optional[str] = None


class NotificationRow(SQLModel, table=True):
    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    title: str
    message: str
    type: str
    priority: str
    action_url: Optional[str] = None
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)


class SqlLibraryStore:
    """Library tables in a local SQL database, same shape as the hosted schema.

    Sessions are blocking, so each call runs in the threadpool.
    """

    def __init__(self, database_url: str):
        self.engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
        )

    def create_db(self) -> None:
        SQLModel.metadata.create_all(self.engine)

    def _load_borrowings(self) -> list[Borrowing]:
        query = (
            select(BorrowingRow, BookRow)
            .join(BookRow, BorrowingRow.book_id == BookRow.id, isouter=True)
            .where(BorrowingRow.status == BORROWED)
        )
        try:
            with Session(self.engine) as session:
                rows = session.exec(query).all()
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to load borrowings: {exc}") from exc
        return [
            Borrowing(
                id=loan.id,
                due_date=loan.due_date,
                borrowed_at=loan.borrowed_at,
                student_id=loan.student_id,
                status=loan.status,
                book=Book(name=book.name, code=book.code) if book else None,
            )
            for loan, book in rows
        ]

    def _get(self, model, key: str):
        try:
            with Session(self.engine) as session:
                return session.get(model, key)
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to load {model.__tablename__} {key}: {exc}") from exc

    def _insert(self, rows: list[NotificationRecord]) -> None:
        try:
            with Session(self.engine) as session:
                session.add_all([NotificationRow(**row.model_dump()) for row in rows])
                session.commit()
        except SQLAlchemyError as exc:
            raise DataAccessError(f"Failed to insert notifications: {exc}") from exc

    async def active_borrowings(self) -> list[Borrowing]:
        return await run_in_threadpool(self._load_borrowings)

    async def get_student(self, student_id: str) -> Optional[Student]:
        row = await run_in_threadpool(self._get, StudentRow, student_id)
        if not row:
            return None
        return Student(id=row.id, user_id=row.user_id, roll_number=row.roll_number)

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await run_in_threadpool(self._get, ProfileRow, user_id)
        if not row:
            return None
        return Profile(id=row.id, email=row.email, name=row.name)

    async def insert_notifications(self, rows: list[NotificationRecord]) -> None:
        await run_in_threadpool(self._insert, rows)

    async def aclose(self) -> None:
        self.engine.dispose()
