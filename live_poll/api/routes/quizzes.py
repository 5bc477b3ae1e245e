import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from live_poll.core.config import settings
from live_poll.core.errors import SessionNotFound
from live_poll.core.security import TeacherIdentity, get_current_teacher
from live_poll.dependencies import Runtime, get_runtime
from live_poll.models import QuizRecord
from live_poll.schemas import (
    PollRecordRead,
    QuizCreate,
    QuizRead,
    SessionConfig,
    StudentJoinRequest,
    StudentJoinResponse,
)

logger = logging.getLogger("api")

router = APIRouter(prefix="/api", tags=["quizzes"])


def serialize_quiz(record: QuizRecord, runtime: Runtime) -> QuizRead:
    session = runtime.sessions.find(record.code)
    return QuizRead(
        id=record.id,
        code=record.code,
        title=record.title,
        description=record.description or "",
        max_participants=record.max_participants,
        allow_late_join=record.allow_late_join,
        created_at=record.created_at,
        live=session is not None,
        participant_count=len(session.participants) if session else 0,
    )


async def owned_quiz(code: str, teacher: TeacherIdentity, runtime: Runtime) -> QuizRecord:
    record = await runtime.store.find_quiz(code)
    if not record:
        raise SessionNotFound()
    if record.teacher_id != teacher.id:
        raise HTTPException(status_code=403, detail="This quiz belongs to another teacher")
    return record


async def allocate_session(config: SessionConfig, runtime: Runtime) -> str:
    """Open a live session whose code no stored quiz still uses."""
    code = runtime.sessions.create(config)
    while await runtime.store.find_quiz(code):
        logger.info("Code already recorded, allocating another code=%s", code)
        runtime.sessions.remove(code)
        code = runtime.sessions.create(config)
    return code


@router.get("/quizzes", response_model=List[QuizRead])
async def list_quizzes(
    teacher: TeacherIdentity = Depends(get_current_teacher),
    runtime: Runtime = Depends(get_runtime),
):
    records = await runtime.store.list_quizzes(teacher.id)
    return [serialize_quiz(record, runtime) for record in records]


@router.post("/quizzes", response_model=QuizRead)
async def create_quiz(
    payload: QuizCreate,
    teacher: TeacherIdentity = Depends(get_current_teacher),
    runtime: Runtime = Depends(get_runtime),
):
    config = SessionConfig(
        title=payload.title.strip(),
        description=payload.description,
        max_participants=payload.max_participants or settings.default_max_participants,
        allow_late_join=payload.allow_late_join,
        owner_id=teacher.id,
    )
    code = await allocate_session(config, runtime)
    try:
        record = await runtime.store.create_quiz(
            QuizRecord(
                teacher_id=teacher.id,
                code=code,
                title=config.title,
                description=config.description,
                max_participants=config.max_participants,
                allow_late_join=config.allow_late_join,
            )
        )
    except Exception:
        # Without a record nobody can manage the live session
        runtime.sessions.remove(code)
        raise
    logger.info("Quiz created code=%s teacher=%s", code, teacher.id)
    return serialize_quiz(record, runtime)


@router.delete("/quizzes/{code}")
async def delete_quiz(
    code: str,
    teacher: TeacherIdentity = Depends(get_current_teacher),
    runtime: Runtime = Depends(get_runtime),
):
    record = await owned_quiz(code, teacher, runtime)
    if runtime.sessions.find(record.code):
        await runtime.coordinator.close_session(record.code)
    await runtime.store.delete_quiz(record.id)
    logger.info("Quiz deleted code=%s teacher=%s", record.code, teacher.id)
    return {"success": True, "message": "Quiz deleted successfully"}


@router.get("/quizzes/{code}/polls", response_model=List[PollRecordRead])
async def poll_history(
    code: str,
    teacher: TeacherIdentity = Depends(get_current_teacher),
    runtime: Runtime = Depends(get_runtime),
):
    record = await owned_quiz(code, teacher, runtime)
    polls = await runtime.store.list_poll_records(record.id)
    return [
        PollRecordRead(
            id=poll.id,
            poll_id=poll.poll_id,
            question=poll.question,
            correct_option_index=poll.correct_option_index,
            results=poll.results,
            total_participants=poll.total_participants,
            total_answers=poll.total_answers,
            ended_by=poll.ended_by,
            ended_at=poll.ended_at,
        )
        for poll in polls
    ]


@router.post("/student/join", response_model=StudentJoinResponse)
async def student_join(payload: StudentJoinRequest, runtime: Runtime = Depends(get_runtime)):
    """Check a code before the student opens a socket; nobody is registered here."""
    session = runtime.sessions.get(payload.quiz_code)
    async with session.lock:
        runtime.coordinator.check_can_join(session)
    return StudentJoinResponse(
        code=session.code,
        title=session.title,
        description=session.description,
        student_name=payload.student_name.strip(),
    )
