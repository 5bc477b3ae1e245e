from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from live_poll.api.routes import auth, quizzes, root
from live_poll.api.ws import router as ws_router
from live_poll.core.config import settings
from live_poll.core.errors import QuizError
from live_poll.core.logging import configure_logging
from live_poll.db import dispose_db, init_db
from live_poll.dependencies import build_runtime


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    await init_db()
    app.state.runtime = build_runtime(settings)
    yield
    await app.state.runtime.timers.shutdown()
    await dispose_db()


app = FastAPI(title="Live Poll", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizError)
async def quiz_error_handler(request: Request, exc: QuizError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.kind, "message": exc.message},
    )


# HTTP routes
app.include_router(root.router)
app.include_router(auth.router)
app.include_router(quizzes.router)

# WebSocket routes
app.include_router(ws_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("live_poll.main:app", host="0.0.0.0", port=8000, reload=True)
