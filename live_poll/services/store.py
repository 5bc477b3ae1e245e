import logging
from typing import AsyncContextManager, Callable, List, Optional

from sqlalchemy import or_
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from live_poll.core.errors import AccountExists
from live_poll.models import PollRecord, QuizRecord, TeacherAccount
from live_poll.schemas.session import ResultsSnapshot

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class QuizStore:
    """Durable records that outlive a live session: accounts, quizzes and poll results."""

    def __init__(self, session_factory: SessionFactory):
        self.logger = logging.getLogger("api")
        self.session_factory = session_factory

    # Teachers

    async def create_teacher(self, username: str, name: str, email: str, password_hash: str) -> TeacherAccount:
        async with self.session_factory() as db:
            result = await db.exec(
                select(TeacherAccount).where(
                    or_(TeacherAccount.email == email.lower(), TeacherAccount.username == username)
                )
            )
            if result.first():
                raise AccountExists()
            teacher = TeacherAccount(username=username, name=name, email=email.lower(), password_hash=password_hash)
            db.add(teacher)
            await db.commit()
            await db.refresh(teacher)
        self.logger.info("Teacher registered id=%s username=%s", teacher.id, username)
        return teacher

    async def find_teacher_by_login(self, login: str) -> Optional[TeacherAccount]:
        async with self.session_factory() as db:
            result = await db.exec(
                select(TeacherAccount).where(
                    or_(TeacherAccount.email == login.lower(), TeacherAccount.username == login)
                )
            )
            return result.first()

    # Quizzes

    async def create_quiz(self, record: QuizRecord) -> QuizRecord:
        async with self.session_factory() as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)
        return record

    async def find_quiz(self, code: str) -> Optional[QuizRecord]:
        async with self.session_factory() as db:
            result = await db.exec(
                select(QuizRecord).where(QuizRecord.code == code.upper()).order_by(QuizRecord.created_at.desc())
            )
            return result.first()

    async def list_quizzes(self, teacher_id: str) -> List[QuizRecord]:
        async with self.session_factory() as db:
            result = await db.exec(
                select(QuizRecord).where(QuizRecord.teacher_id == teacher_id).order_by(QuizRecord.created_at.desc())
            )
            return list(result.all())

    async def delete_quiz(self, quiz_id: str) -> bool:
        async with self.session_factory() as db:
            record = await db.get(QuizRecord, quiz_id)
            if not record:
                return False
            polls = await db.exec(select(PollRecord).where(PollRecord.quiz_id == quiz_id))
            for poll in polls.all():
                await db.delete(poll)
            await db.flush()
            await db.delete(record)
            await db.commit()
        return True

    # Poll history

    async def archive_results(self, code: str, snapshot: ResultsSnapshot) -> Optional[PollRecord]:
        quiz = await self.find_quiz(code)
        if quiz is None:
            self.logger.info("Poll not archived, no quiz record session=%s poll=%s", code, snapshot.poll_id)
            return None
        record = PollRecord(
            quiz_id=quiz.id,
            poll_id=snapshot.poll_id,
            question=snapshot.question,
            correct_option_index=snapshot.correct_option_index,
            results=[result.model_dump() for result in snapshot.results],
            total_participants=snapshot.total_participants,
            total_answers=snapshot.total_answers,
            ended_by=snapshot.ended_by,
            ended_at=snapshot.ended_at,
        )
        async with self.session_factory() as db:
            db.add(record)
            await db.commit()
            await db.refresh(record)
        self.logger.info("Poll archived session=%s poll=%s", code, snapshot.poll_id)
        return record

    async def list_poll_records(self, quiz_id: str) -> List[PollRecord]:
        async with self.session_factory() as db:
            result = await db.exec(
                select(PollRecord).where(PollRecord.quiz_id == quiz_id).order_by(PollRecord.ended_at)
            )
            return list(result.all())
