# mockexam/api/v1/endpoints/results.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mockexam.core.security import get_current_teacher, get_current_user
from mockexam.db.session import get_db
from mockexam.models.user import User
from mockexam.schemas.result import ResultList, ResultPublic, ResultWithEvaluation
from mockexam.services import result_service
from mockexam.services.writing_evaluator import WritingEvaluator, get_writing_evaluator

router = APIRouter(prefix="/results", tags=["results"])


@router.get("/", response_model=ResultList)
def list_results(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
    skip: int = 0,
    limit: int = 100,
):
    results, total = result_service.list_results(
        db, caller=current_teacher, skip=skip, limit=limit
    )
    return ResultList(
        results=[ResultPublic.model_validate(r) for r in results],
        total=total,
    )


@router.get("/student/{student_id}", response_model=List[ResultPublic])
def list_student_results(
    student_id: int,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    return result_service.list_student_results(
        db, student_id=student_id, caller=current_teacher
    )


@router.get("/{result_id}", response_model=ResultPublic)
def get_result(
    result_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return result_service.get_result(db, result_id, caller=current_user)


@router.post("/{result_id}/evaluate-writing", response_model=ResultWithEvaluation)
def evaluate_writing(
    result_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    evaluator: WritingEvaluator = Depends(get_writing_evaluator),
):
    """Run the AI writing evaluation, or return the stored one."""
    result, evaluation = result_service.evaluate_writing(
        db, result_id, evaluator=evaluator, caller=current_user
    )
    data = ResultPublic.model_validate(result).model_dump()
    return ResultWithEvaluation(**data, ai_evaluation=evaluation)
