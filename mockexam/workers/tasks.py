"""
Writing evaluation tasks for the worker
Re-run AI evaluation for writing submissions whose inline evaluation failed
"""

import logging

from mockexam.core.errors import ExamError
from mockexam.db.session import SessionLocal
from mockexam.services.result_service import evaluate_writing
from mockexam.services.writing_evaluator import get_writing_evaluator

logger = logging.getLogger(__name__)


def writing_evaluation_task(result_id: int) -> dict:
    """
    Worker task: evaluate one writing Result and store the evaluation.

    Already evaluated Results are returned untouched, so a duplicated job is
    harmless.
    """
    db = SessionLocal()
    try:
        logger.info(f"Starting writing evaluation task for result {result_id}")

        result, payload = evaluate_writing(
            db,
            result_id,
            evaluator=get_writing_evaluator(),
        )

        logger.info(f"Completed writing evaluation for result {result_id}: band={result.band_score}")
        return {
            "status": "success",
            "result_id": result.id,
            "band_score": result.band_score,
        }

    except ExamError as e:
        logger.error(f"Writing evaluation failed for result {result_id}: {e}")
        return {
            "status": "error",
            "result_id": result_id,
            "code": e.code,
            "error": str(e),
        }

    except Exception as e:
        logger.error(
            f"Unexpected error during writing evaluation for result {result_id}: {e}",
            exc_info=True,
        )
        return {
            "status": "error",
            "result_id": result_id,
            "code": "unexpected_error",
            "error": str(e),
        }

    finally:
        db.close()
