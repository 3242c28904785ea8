# mockexam/api/v1/endpoints/assignments.py
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from mockexam.core.security import get_current_student, get_current_teacher, get_current_user
from mockexam.db.session import get_db
from mockexam.models.user import User
from mockexam.schemas.assignment import (
    AssignmentCreate,
    AssignmentList,
    AssignmentPublic,
    AssignmentStarted,
    SaveHighlights,
    SubmissionAck,
    SubmitAnswers,
)
from mockexam.services import attempt_service
from mockexam.services.writing_evaluator import WritingEvaluator, get_writing_evaluator

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/", response_model=AssignmentPublic, status_code=status.HTTP_201_CREATED)
def create_assignment(
    obj_in: AssignmentCreate,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    """Assign a section to a student."""
    return attempt_service.create_assignment(db, caller=current_teacher, obj_in=obj_in)


@router.get("/", response_model=AssignmentList)
def list_assignments(
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
    skip: int = 0,
    limit: int = 100,
):
    assignments, total = attempt_service.list_assignments(
        db, caller=current_teacher, skip=skip, limit=limit
    )
    return AssignmentList(
        assignments=[AssignmentPublic.model_validate(a) for a in assignments],
        total=total,
    )


@router.get("/my", response_model=List[AssignmentPublic])
def list_my_assignments(
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    return attempt_service.list_student_assignments(
        db, student_id=current_student.id, caller=current_student
    )


@router.get("/student/{student_id}", response_model=List[AssignmentPublic])
def list_student_assignments(
    student_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return attempt_service.list_student_assignments(
        db, student_id=student_id, caller=current_user
    )


@router.get("/{assignment_id}", response_model=AssignmentPublic)
def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return attempt_service.get_assignment_for_caller(db, assignment_id, caller=current_user)


@router.post("/{assignment_id}/start", response_model=AssignmentStarted)
def start_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    """Start the timer, or return the time left if it is already running."""
    assignment, remaining = attempt_service.start_attempt(
        db, assignment_id=assignment_id, student_id=current_student.id
    )
    data = AssignmentPublic.model_validate(assignment).model_dump()
    return AssignmentStarted(**data, remaining_seconds=remaining)


@router.post("/{assignment_id}/submit", response_model=SubmissionAck)
def submit_assignment(
    assignment_id: int,
    obj_in: SubmitAnswers,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
    evaluator: WritingEvaluator = Depends(get_writing_evaluator),
):
    """
    Grade and close the attempt. The score is not returned here; clients
    read it from the results endpoints.
    """
    return attempt_service.submit_attempt(
        db,
        assignment_id=assignment_id,
        student_id=current_student.id,
        answers=obj_in.answers,
        evaluator=evaluator,
    )


@router.post("/{assignment_id}/highlight", response_model=AssignmentPublic)
def save_highlights(
    assignment_id: int,
    obj_in: SaveHighlights,
    db: Session = Depends(get_db),
    current_student: User = Depends(get_current_student),
):
    return attempt_service.save_highlights(
        db,
        assignment_id=assignment_id,
        student_id=current_student.id,
        highlights=obj_in.highlights,
    )


@router.post("/{assignment_id}/reassign", response_model=AssignmentPublic)
def reassign_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
    current_teacher: User = Depends(get_current_teacher),
):
    """Reset the attempt for a retake; earlier results stay visible."""
    return attempt_service.reassign_attempt(
        db, assignment_id=assignment_id, caller=current_teacher
    )
