import logging

from fastapi import APIRouter, Depends

from live_poll.core.errors import InvalidCredentials
from live_poll.core.security import TeacherIdentity, create_access_token, hash_password, verify_password
from live_poll.dependencies import Runtime, get_runtime
from live_poll.models import TeacherAccount
from live_poll.schemas import AuthResponse, TeacherLogin, TeacherRead, TeacherRegister

logger = logging.getLogger("api")

router = APIRouter(prefix="/api/auth/teacher", tags=["auth"])


def issue(teacher: TeacherAccount) -> AuthResponse:
    token = create_access_token(TeacherIdentity(id=teacher.id, name=teacher.name))
    return AuthResponse(
        teacher=TeacherRead(id=teacher.id, name=teacher.name, email=teacher.email),
        token=token,
    )


@router.post("/register", response_model=AuthResponse)
async def register(payload: TeacherRegister, runtime: Runtime = Depends(get_runtime)):
    teacher = await runtime.store.create_teacher(
        username=payload.username,
        name=f"{payload.first_name} {payload.last_name}",
        email=payload.email,
        password_hash=hash_password(payload.password),
    )
    return issue(teacher)


@router.post("/login", response_model=AuthResponse)
async def login(payload: TeacherLogin, runtime: Runtime = Depends(get_runtime)):
    teacher = await runtime.store.find_teacher_by_login(payload.login)
    if not teacher or not verify_password(payload.password, teacher.password_hash):
        logger.info("Login rejected login=%s", payload.login)
        raise InvalidCredentials()
    logger.info("Teacher logged in id=%s", teacher.id)
    return issue(teacher)
