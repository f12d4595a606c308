from datetime import date, datetime, time, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

BORROWED = "BORROWED"
RETURNED = "RETURNED"


class Book(BaseModel):
    name: str
    code: str


class Borrowing(BaseModel):
    id: str
    due_date: date
    borrowed_at: Optional[datetime] = None
    student_id: str
    status: str = BORROWED
    book: Optional[Book] = Field(default=None, alias="books")

    model_config = {"populate_by_name": True}

    @property
    def due_at(self) -> datetime:
        """Due dates are calendar dates; the loan is due at midnight UTC."""
        return datetime.combine(self.due_date, time.min, tzinfo=timezone.utc)


class Student(BaseModel):
    id: str
    user_id: str
    roll_number: Optional[str] = None


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class NotificationRecord(BaseModel):
    user_id: str
    title: str
    message: str
    type: str = "library"
    priority: Literal["normal", "high"] = "normal"
    action_url: str = "/library"
