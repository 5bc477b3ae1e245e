from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class TeacherRegister(BaseModel):
    username: str = Field(min_length=1)
    email: str = Field(min_length=3)
    password: str = Field(min_length=6)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)


class TeacherLogin(BaseModel):
    login: str
    password: str


class TeacherRead(BaseModel):
    id: str
    name: str
    email: str


class AuthResponse(BaseModel):
    teacher: TeacherRead
    token: str
    token_type: str = "bearer"


class QuizCreate(BaseModel):
    title: str
    description: str = ""
    max_participants: Optional[int] = Field(default=None, ge=1)
    allow_late_join: bool = True


class QuizRead(BaseModel):
    id: str
    code: str
    title: str
    description: str
    max_participants: int
    allow_late_join: bool
    created_at: datetime
    live: bool = False
    participant_count: int = 0


class StudentJoinRequest(BaseModel):
    student_name: str = Field(min_length=1, max_length=64)
    quiz_code: str


class StudentJoinResponse(BaseModel):
    code: str
    title: str
    description: str
    student_name: str


class OptionResultRead(BaseModel):
    text: str
    count: int
    percentage: int


class PollRecordRead(BaseModel):
    id: str
    poll_id: str
    question: str
    correct_option_index: int
    results: List[OptionResultRead]
    total_participants: int
    total_answers: int
    ended_by: str
    ended_at: datetime
