# mockexam/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from mockexam.api.v1.endpoints import assignments, health, results
from mockexam.core.config import settings
from mockexam.core.errors import ExamError
from mockexam.core.logging_config import setup_logging
from mockexam.db.session import init_db

logger = logging.getLogger(__name__)

app = FastAPI(title=settings.PROJECT_NAME)

origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ExamError)
async def exam_error_handler(request: Request, exc: ExamError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


@app.on_event("startup")
def on_startup():
    setup_logging()
    init_db()


app.include_router(health.router, prefix="/api/v1")
app.include_router(assignments.router, prefix="/api/v1")
app.include_router(results.router, prefix="/api/v1")
