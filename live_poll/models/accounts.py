import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel

from live_poll.core.time import utc_now


class TeacherAccount(SQLModel, table=True):
    __tablename__ = "teachers"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    username: str = Field(index=True, unique=True)
    name: str
    email: str = Field(index=True, unique=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))


class QuizRecord(SQLModel, table=True):
    __tablename__ = "quizzes"

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    teacher_id: str = Field(foreign_key="teachers.id", index=True)
    code: str = Field(index=True)
    title: str
    description: Optional[str] = None
    max_participants: int = Field(default=50, ge=1)
    allow_late_join: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime(timezone=True)))
