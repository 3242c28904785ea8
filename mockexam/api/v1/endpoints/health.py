# mockexam/api/v1/endpoints/health.py
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.orm import Session

from mockexam.core.config import settings
from mockexam.db.session import get_db
from mockexam.services.writing_evaluator import WritingEvaluator, get_writing_evaluator
from mockexam.workers.queue import WRITING_EVALUATION_QUEUE_NAME, get_queue

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live")
def liveness_probe():
    return {"status": "ok"}


@router.get("/db")
def db_health(db: Session = Depends(get_db)):
    db.execute(text("SELECT 1"))
    return {"status": "ok"}


@router.get("/writing")
def writing_evaluator_health(evaluator: WritingEvaluator = Depends(get_writing_evaluator)):
    """
    Whether AI writing evaluation can run at all. Does not call the provider;
    without credentials every writing submission degrades to band 0.
    """
    configured = bool(evaluator.credentials)
    body = {
        "status": "ok" if configured else "degraded",
        "credentials": len(evaluator.credentials),
        "models": list(evaluator.models),
        "requeue_enabled": settings.ENQUEUE_FAILED_WRITING_EVALUATIONS,
    }
    return JSONResponse(status_code=200 if configured else 503, content=body)


@router.get("/queue")
def queue_health():
    try:
        queue = get_queue(WRITING_EVALUATION_QUEUE_NAME)
        pending = queue.count
    except RedisError as e:
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(e)})
    return {"status": "ok", "queue": WRITING_EVALUATION_QUEUE_NAME, "pending": pending}
