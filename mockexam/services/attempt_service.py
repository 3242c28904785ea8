# mockexam/services/attempt_service.py
"""
Attempt lifecycle: assign -> start -> submit, and reassign for retakes.

Every write to an ExamAssignment goes through the mapper's version check, so
two concurrent submissions of the same attempt cannot both commit.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional, Tuple

from pydantic import ValidationError as SchemaError
from redis.exceptions import RedisError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from mockexam.core.config import settings
from mockexam.core.errors import (
    InvalidState,
    NotAuthorized,
    NotFound,
    ValidationError,
    WritingEvaluationError,
)
from mockexam.models.assignment import AI_EVALUATION_KEY, AttemptStatus, ExamAssignment
from mockexam.models.exam_section import ExamSection, SectionType
from mockexam.models.result import ExamResult
from mockexam.models.user import CENTER_SCOPED_ROLES, Role, User
from mockexam.schemas.assignment import AssignmentCreate, SubmissionAck
from mockexam.schemas.question import parse_questions
from mockexam.services import answer_evaluator, band_converter
from mockexam.services.writing_evaluator import WritingEvaluator
from mockexam.services.writing_tasks import extract_writing_tasks
from mockexam.workers.queue import enqueue_writing_evaluation

logger = logging.getLogger(__name__)

WRITING_TOTAL_SCORE = 9


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def remaining_seconds(end_time: datetime, now: datetime) -> int:
    return max(0, int((_as_utc(end_time) - _as_utc(now)).total_seconds()))


def _get_assignment(db: Session, assignment_id: int) -> ExamAssignment:
    assignment: Optional[ExamAssignment] = db.get(ExamAssignment, assignment_id)
    if assignment is None:
        raise NotFound("Assignment not found")
    return assignment


def _get_section(db: Session, section_id: int) -> ExamSection:
    section: Optional[ExamSection] = db.get(ExamSection, section_id)
    if section is None:
        raise NotFound("Section not found")
    return section


def _check_owner(assignment: ExamAssignment, student_id: int) -> None:
    if assignment.student_id != student_id:
        raise NotAuthorized("This assignment is not assigned to you")


def _check_center(db: Session, caller: User, assignment: ExamAssignment) -> None:
    if caller.role not in CENTER_SCOPED_ROLES:
        return
    student = db.get(User, assignment.student_id)
    if student is None or student.center_id != caller.center_id:
        raise NotAuthorized("You can only manage assignments from your center")


# ========== ASSIGNMENTS ==========


def create_assignment(
    db: Session,
    *,
    caller: User,
    obj_in: AssignmentCreate,
) -> ExamAssignment:
    student: Optional[User] = db.get(User, obj_in.student_id)
    if student is None or student.role != Role.STUDENT:
        raise ValidationError("Invalid student")
    if caller.role in CENTER_SCOPED_ROLES and student.center_id != caller.center_id:
        raise NotAuthorized("Student must belong to your center")

    if db.get(ExamSection, obj_in.section_id) is None:
        raise ValidationError("Section not found")

    existing = (
        db.query(ExamAssignment)
        .filter(
            ExamAssignment.student_id == obj_in.student_id,
            ExamAssignment.section_id == obj_in.section_id,
        )
        .first()
    )
    if existing is not None:
        raise ValidationError("Section already assigned to this student")

    assignment = ExamAssignment(
        student_id=obj_in.student_id,
        section_id=obj_in.section_id,
        status=AttemptStatus.ASSIGNED,
        answers={},
        score=0,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    return assignment


def get_assignment_for_caller(db: Session, assignment_id: int, *, caller: User) -> ExamAssignment:
    assignment = _get_assignment(db, assignment_id)
    if caller.role == Role.STUDENT:
        if assignment.student_id != caller.id:
            raise NotAuthorized("You can only view your own assignments")
        return assignment
    _check_center(db, caller, assignment)
    return assignment


def list_assignments(
    db: Session,
    *,
    caller: User,
    skip: int = 0,
    limit: int = 100,
) -> Tuple[List[ExamAssignment], int]:
    if caller.role == Role.STUDENT:
        raise NotAuthorized("Students cannot list all assignments")

    query = db.query(ExamAssignment)
    if caller.role in CENTER_SCOPED_ROLES:
        query = query.join(User, User.id == ExamAssignment.student_id).filter(
            User.center_id == caller.center_id
        )

    total = query.count()
    assignments = (
        query.order_by(ExamAssignment.created_at.desc(), ExamAssignment.id.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )
    return assignments, total


def list_student_assignments(
    db: Session,
    *,
    student_id: int,
    caller: User,
) -> List[ExamAssignment]:
    if caller.role == Role.STUDENT and caller.id != student_id:
        raise NotAuthorized("You can only view your own assignments")
    if caller.role in CENTER_SCOPED_ROLES:
        student = db.get(User, student_id)
        if student is None or student.center_id != caller.center_id:
            raise NotAuthorized("You can only view students from your center")
    return (
        db.query(ExamAssignment)
        .filter(ExamAssignment.student_id == student_id)
        .order_by(ExamAssignment.created_at.desc(), ExamAssignment.id.desc())
        .all()
    )


# ========== LIFECYCLE ==========


def start_attempt(
    db: Session,
    *,
    assignment_id: int,
    student_id: int,
    now: Optional[datetime] = None,
) -> Tuple[ExamAssignment, int]:
    """
    ASSIGNED -> IN_PROGRESS. Starting an attempt that is already running
    returns it with the time left instead of restarting the clock.

    Returns (assignment, remaining_seconds).
    """
    now = now or _utcnow()
    assignment = _get_assignment(db, assignment_id)
    _check_owner(assignment, student_id)

    if assignment.status == AttemptStatus.SUBMITTED:
        raise InvalidState("This exam has already been submitted")

    section = _get_section(db, assignment.section_id)
    duration_seconds = section.duration * 60

    if assignment.status == AttemptStatus.IN_PROGRESS and assignment.start_time is not None:
        end_time = assignment.end_time or (
            _as_utc(assignment.start_time) + timedelta(seconds=duration_seconds)
        )
        return assignment, remaining_seconds(end_time, now)

    assignment.status = AttemptStatus.IN_PROGRESS
    assignment.start_time = now
    assignment.end_time = now + timedelta(seconds=duration_seconds)
    db.add(assignment)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        # lost the race to another start of the same attempt
        db.refresh(assignment)
        if assignment.status == AttemptStatus.IN_PROGRESS and assignment.end_time is not None:
            return assignment, remaining_seconds(assignment.end_time, now)
        raise InvalidState("Attempt was modified concurrently")

    db.refresh(assignment)
    logger.info(f"Attempt {assignment.id} started by student {student_id}")
    return assignment, duration_seconds


def _score_objective(section: ExamSection, answers: dict[str, Any]) -> Tuple[float, float, float]:
    try:
        questions = parse_questions(section.questions)
    except SchemaError as e:
        raise ValidationError(f"Section {section.id} has malformed questions: {e}") from e

    summary = answer_evaluator.score_answers(questions, answers)
    band_score = band_converter.to_band(summary.score, summary.total_score, section.type)
    return summary.score, summary.total_score, band_score


def submit_attempt(
    db: Session,
    *,
    assignment_id: int,
    student_id: int,
    answers: dict[str, Any],
    evaluator: Optional[WritingEvaluator] = None,
    now: Optional[datetime] = None,
) -> SubmissionAck:
    """
    Grade and close an attempt, then append a Result.

    Late submissions are accepted. A writing submission whose AI evaluation
    fails is still stored, with a zero band and no feedback, so it can be
    evaluated again later.
    """
    assignment = _get_assignment(db, assignment_id)
    _check_owner(assignment, student_id)

    if assignment.status == AttemptStatus.SUBMITTED:
        raise InvalidState("This exam has already been submitted")

    section = _get_section(db, assignment.section_id)
    stored_answers = {k: v for k, v in answers.items() if k != AI_EVALUATION_KEY}
    feedback: Optional[dict] = None
    degraded = False

    if section.type == SectionType.WRITING:
        score = band_score = 0.0
        total_score = WRITING_TOTAL_SCORE
        tasks = extract_writing_tasks(stored_answers, section)
        if tasks:
            if evaluator is None:
                raise ValueError("a WritingEvaluator is required for writing sections")
            try:
                evaluation = evaluator.evaluate_section(tasks)
            except WritingEvaluationError as e:
                logger.warning(
                    f"AI evaluation failed for attempt {assignment.id}, storing submission without it: {e}"
                )
                degraded = True
            else:
                band_score = score = evaluation.band_score
                feedback = evaluation.to_payload()
                stored_answers[AI_EVALUATION_KEY] = feedback
    else:
        score, total_score, band_score = _score_objective(section, stored_answers)

    assignment.status = AttemptStatus.SUBMITTED
    assignment.answers = stored_answers
    assignment.score = score

    result = ExamResult(
        assignment_id=assignment.id,
        student_id=assignment.student_id,
        section_id=assignment.section_id,
        score=score,
        total_score=total_score,
        band_score=band_score,
        answers=dict(stored_answers),
        feedback=feedback,
        submitted_at=now or _utcnow(),
    )
    db.add(assignment)
    db.add(result)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise InvalidState("This exam has already been submitted")

    db.refresh(assignment)
    logger.info(
        f"Attempt {assignment.id} submitted: score={score}/{total_score}, band={band_score}"
    )

    if degraded and settings.ENQUEUE_FAILED_WRITING_EVALUATIONS:
        try:
            enqueue_writing_evaluation(result.id)
        except RedisError as e:
            logger.error(f"Could not enqueue writing re-evaluation for result {result.id}: {e}")

    return SubmissionAck(
        message="Exam submitted successfully",
        assignment_id=assignment.id,
        status=assignment.status,
    )


def reassign_attempt(
    db: Session,
    *,
    assignment_id: int,
    caller: Optional[User] = None,
) -> ExamAssignment:
    """
    Reset an attempt for a retake. Results from earlier submissions are kept
    so teachers can still see previous attempts. ``caller`` is None for
    internal callers.
    """
    assignment = _get_assignment(db, assignment_id)
    if caller is not None:
        _check_center(db, caller, assignment)

    assignment.status = AttemptStatus.ASSIGNED
    assignment.answers = {}
    assignment.score = 0
    assignment.start_time = None
    assignment.end_time = None
    db.add(assignment)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise InvalidState("Attempt was modified concurrently")

    db.refresh(assignment)
    logger.info(f"Attempt {assignment.id} reassigned")
    return assignment


def save_highlights(
    db: Session,
    *,
    assignment_id: int,
    student_id: int,
    highlights: dict[str, Any],
) -> ExamAssignment:
    assignment = _get_assignment(db, assignment_id)
    _check_owner(assignment, student_id)

    assignment.highlights = highlights
    db.add(assignment)
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        raise InvalidState("Attempt was modified concurrently")
    db.refresh(assignment)
    return assignment
