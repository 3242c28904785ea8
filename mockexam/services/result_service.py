# mockexam/services/result_service.py
from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mockexam.core.errors import InvalidState, NotAuthorized, NotFound, ValidationError
from mockexam.models.assignment import AI_EVALUATION_KEY, AttemptStatus, ExamAssignment
from mockexam.models.exam_section import ExamSection, SectionType
from mockexam.models.result import ExamResult
from mockexam.models.user import CENTER_SCOPED_ROLES, Role, User
from mockexam.services.writing_evaluator import WritingEvaluator
from mockexam.services.writing_tasks import extract_writing_tasks

logger = logging.getLogger(__name__)


def _newest_first(query):
    return query.order_by(ExamResult.submitted_at.desc(), ExamResult.id.desc())


def _is_completed_evaluation(payload: Any) -> bool:
    return isinstance(payload, dict) and "bandScore" in payload


def _get_result(db: Session, result_id: int) -> ExamResult:
    result: Optional[ExamResult] = db.get(ExamResult, result_id)
    if result is None:
        raise NotFound("Result not found")
    return result


def _check_can_view(db: Session, caller: User, result: ExamResult) -> None:
    if caller.role == Role.STUDENT:
        if result.student_id != caller.id:
            raise NotAuthorized("You can only view your own results")
        return
    if caller.role in CENTER_SCOPED_ROLES:
        student = db.get(User, result.student_id)
        if student is None or student.center_id != caller.center_id:
            raise NotAuthorized("You can only view results from your center")


def list_results(
    db: Session,
    *,
    caller: User,
    skip: int = 0,
    limit: int = 100,
) -> Tuple[List[ExamResult], int]:
    if caller.role == Role.STUDENT:
        raise NotAuthorized("Students cannot list all results")

    query = db.query(ExamResult)
    if caller.role in CENTER_SCOPED_ROLES:
        query = query.join(User, User.id == ExamResult.student_id).filter(
            User.center_id == caller.center_id
        )

    total = query.count()
    results = _newest_first(query).offset(skip).limit(limit).all()
    return results, total


def get_result(db: Session, result_id: int, *, caller: User) -> ExamResult:
    result = _get_result(db, result_id)
    _check_can_view(db, caller, result)
    return result


def list_student_results(
    db: Session,
    *,
    student_id: int,
    caller: User,
    section_id: Optional[int] = None,
) -> List[ExamResult]:
    """
    Every submission of a student, newest first. Retakes show up as separate
    rows for the same section.
    """
    if caller.role == Role.STUDENT:
        raise NotAuthorized("Students cannot view results")
    if caller.role in CENTER_SCOPED_ROLES:
        student = db.get(User, student_id)
        if student is None or student.center_id != caller.center_id:
            raise NotAuthorized("You can only view results for students in your center")

    query = db.query(ExamResult).filter(ExamResult.student_id == student_id)
    if section_id is not None:
        query = query.filter(ExamResult.section_id == section_id)
    return _newest_first(query).all()


def _sync_attempt_evaluation(db: Session, result: ExamResult, payload: dict) -> None:
    """Copy the evaluation onto the attempt while it still shows this submission."""
    if result.assignment_id is None:
        return
    assignment: Optional[ExamAssignment] = db.get(ExamAssignment, result.assignment_id)
    if assignment is None or assignment.status != AttemptStatus.SUBMITTED:
        return

    latest = _newest_first(
        db.query(ExamResult.id).filter(ExamResult.assignment_id == assignment.id)
    ).first()
    if latest is None or latest.id != result.id:
        return

    assignment.answers = {**(assignment.answers or {}), AI_EVALUATION_KEY: payload}
    assignment.score = payload["bandScore"]
    db.add(assignment)


def evaluate_writing(
    db: Session,
    result_id: int,
    *,
    evaluator: WritingEvaluator,
    caller: Optional[User] = None,
) -> Tuple[ExamResult, dict]:
    """
    Run (or return) the AI evaluation of a writing Result.

    A Result that already carries an evaluation is returned without calling
    the provider. Provider failures propagate to the caller. ``caller`` is
    None for worker jobs.

    Returns (result, evaluation payload).
    """
    result = _get_result(db, result_id)
    if caller is not None:
        _check_can_view(db, caller, result)

    section: Optional[ExamSection] = db.get(ExamSection, result.section_id)
    if section is None or section.type != SectionType.WRITING:
        raise ValidationError("AI evaluation is only available for writing sections")

    if _is_completed_evaluation(result.feedback):
        return result, result.feedback

    snapshot = dict(result.answers or {})
    stored = snapshot.get(AI_EVALUATION_KEY)
    if _is_completed_evaluation(stored):
        result.feedback = stored
        db.add(result)
        db.commit()
        db.refresh(result)
        return result, stored

    tasks = extract_writing_tasks(snapshot, section)
    if not tasks:
        raise ValidationError("No writing response found to evaluate")

    evaluation = evaluator.evaluate_section(tasks)
    payload = evaluation.to_payload()

    result.score = evaluation.band_score
    result.band_score = evaluation.band_score
    result.feedback = payload
    result.answers = {**snapshot, AI_EVALUATION_KEY: payload}
    db.add(result)
    _sync_attempt_evaluation(db, result, payload)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise InvalidState("Attempt was modified concurrently")

    db.refresh(result)
    logger.info(f"Writing result {result.id} evaluated: band={evaluation.band_score}")
    return result, payload
