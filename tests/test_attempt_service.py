"""Tests for the attempt lifecycle: create, start, submit, reassign."""

from datetime import datetime, timedelta, timezone

import pytest
from redis.exceptions import RedisError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mockexam.core.errors import (
    InvalidState,
    NotAuthorized,
    NotFound,
    ProviderExhausted,
    ValidationError,
)
from mockexam.db.base import Base
from mockexam.models.assignment import AI_EVALUATION_KEY, AttemptStatus, ExamAssignment
from mockexam.models.exam_section import ExamSection, SectionType
from mockexam.models.result import ExamResult
from mockexam.models.user import Role, User
from mockexam.schemas.assignment import AssignmentCreate
from mockexam.services import answer_evaluator, attempt_service
from tests.conftest import READING_QUESTIONS, FakeWritingEvaluator

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

PERFECT_READING = {"q1": "TRUE", "q2": "B", "q3": "garden", "q4": ["A", "C"]}
ESSAY = "Remote work has changed how companies operate. " * 10


def results_for(db, assignment):
    return (
        db.query(ExamResult)
        .filter(ExamResult.assignment_id == assignment.id)
        .order_by(ExamResult.id)
        .all()
    )


class TestCreateAssignment:
    def test_create(self, db_session, teacher, student, reading_section):
        assignment = attempt_service.create_assignment(
            db_session,
            caller=teacher,
            obj_in=AssignmentCreate(student_id=student.id, section_id=reading_section.id),
        )
        assert assignment.status == AttemptStatus.ASSIGNED
        assert assignment.answers == {}
        assert assignment.score == 0

    def test_duplicate_rejected(self, db_session, teacher, student, reading_section, make_assignment):
        make_assignment(student, reading_section)
        with pytest.raises(ValidationError):
            attempt_service.create_assignment(
                db_session,
                caller=teacher,
                obj_in=AssignmentCreate(student_id=student.id, section_id=reading_section.id),
            )

    def test_non_student_rejected(self, db_session, teacher, reading_section):
        with pytest.raises(ValidationError):
            attempt_service.create_assignment(
                db_session,
                caller=teacher,
                obj_in=AssignmentCreate(student_id=teacher.id, section_id=reading_section.id),
            )

    def test_missing_section_rejected(self, db_session, teacher, student):
        with pytest.raises(ValidationError):
            attempt_service.create_assignment(
                db_session,
                caller=teacher,
                obj_in=AssignmentCreate(student_id=student.id, section_id=999),
            )

    def test_other_center_student_rejected(self, db_session, teacher, other_student, reading_section):
        with pytest.raises(NotAuthorized):
            attempt_service.create_assignment(
                db_session,
                caller=teacher,
                obj_in=AssignmentCreate(student_id=other_student.id, section_id=reading_section.id),
            )


class TestListAssignments:
    def test_teacher_sees_own_center_only(
        self, db_session, teacher, other_teacher, student, other_student, reading_section, make_assignment
    ):
        mine = make_assignment(student, reading_section)
        make_assignment(other_student, reading_section)

        assignments, total = attempt_service.list_assignments(db_session, caller=teacher)
        assert total == 1
        assert [a.id for a in assignments] == [mine.id]

        _, other_total = attempt_service.list_assignments(db_session, caller=other_teacher)
        assert other_total == 1

    def test_super_admin_sees_everything(self, db_session, student, other_student, reading_section, make_assignment):
        admin = User(username="root", role=Role.SUPER_ADMIN)
        db_session.add(admin)
        db_session.commit()
        make_assignment(student, reading_section)
        make_assignment(other_student, reading_section)

        _, total = attempt_service.list_assignments(db_session, caller=admin)
        assert total == 2

    def test_students_cannot_list(self, db_session, student):
        with pytest.raises(NotAuthorized):
            attempt_service.list_assignments(db_session, caller=student)

    def test_student_views_own_only(self, db_session, student, other_student, reading_section, make_assignment):
        make_assignment(student, reading_section)
        assert len(attempt_service.list_student_assignments(db_session, student_id=student.id, caller=student)) == 1
        with pytest.raises(NotAuthorized):
            attempt_service.list_student_assignments(db_session, student_id=other_student.id, caller=student)

    def test_staff_view_scoped_to_center(
        self, db_session, teacher, other_teacher, student, reading_section, make_assignment
    ):
        assignment = make_assignment(student, reading_section)

        assert attempt_service.get_assignment_for_caller(db_session, assignment.id, caller=teacher).id == assignment.id
        with pytest.raises(NotAuthorized):
            attempt_service.get_assignment_for_caller(db_session, assignment.id, caller=other_teacher)
        with pytest.raises(NotAuthorized):
            attempt_service.list_student_assignments(db_session, student_id=student.id, caller=other_teacher)


class TestStartAttempt:
    def test_start_sets_window(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)

        started, remaining = attempt_service.start_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, now=NOW
        )

        assert started.status == AttemptStatus.IN_PROGRESS
        assert remaining == 60 * 60
        end_time = started.end_time.replace(tzinfo=timezone.utc)
        assert end_time == NOW + timedelta(minutes=60)

    def test_restart_keeps_clock(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=student.id, now=NOW)

        _, remaining = attempt_service.start_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            now=NOW + timedelta(minutes=10),
        )
        assert remaining == 50 * 60

    def test_remaining_never_negative(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=student.id, now=NOW)

        _, remaining = attempt_service.start_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            now=NOW + timedelta(hours=2),
        )
        assert remaining == 0

    def test_wrong_student(self, db_session, student, other_student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        with pytest.raises(NotAuthorized):
            attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=other_student.id)

    def test_already_submitted(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.SUBMITTED)
        with pytest.raises(InvalidState):
            attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=student.id)

    def test_unknown_assignment(self, db_session, student):
        with pytest.raises(NotFound):
            attempt_service.start_attempt(db_session, assignment_id=12345, student_id=student.id)


class TestSubmitObjective:
    def test_perfect_reading(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)

        ack = attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers=PERFECT_READING,
        )

        assert ack.status == AttemptStatus.SUBMITTED
        assert ack.assignment_id == assignment.id
        [result] = results_for(db_session, assignment)
        assert result.score == 5
        assert result.total_score == 5
        assert result.band_score == 9.0
        assert result.feedback is None
        db_session.refresh(assignment)
        assert assignment.status == AttemptStatus.SUBMITTED
        assert assignment.score == 5

    def test_partial_reading(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)

        attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"q1": "TRUE", "q4": ["A", "E"]},
        )

        [result] = results_for(db_session, assignment)
        # 2/5 -> 16/40
        assert result.score == 2
        assert result.total_score == 5
        assert result.band_score == 5.0

    def test_submit_without_start(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        ack = attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers={}
        )
        assert ack.status == AttemptStatus.SUBMITTED
        [result] = results_for(db_session, assignment)
        assert result.score == 0
        assert result.band_score == 0.0

    def test_late_submission_accepted(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        attempt_service.start_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, now=NOW - timedelta(days=1)
        )
        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers=PERFECT_READING
        )
        assert len(results_for(db_session, assignment)) == 1

    def test_double_submit(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)
        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers=PERFECT_READING
        )
        with pytest.raises(InvalidState):
            attempt_service.submit_attempt(
                db_session, assignment_id=assignment.id, student_id=student.id, answers={}
            )
        assert len(results_for(db_session, assignment)) == 1

    def test_wrong_student(self, db_session, student, other_student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)
        with pytest.raises(NotAuthorized):
            attempt_service.submit_attempt(
                db_session, assignment_id=assignment.id, student_id=other_student.id, answers={}
            )

    def test_client_evaluation_key_dropped(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)
        answers = {**PERFECT_READING, AI_EVALUATION_KEY: {"bandScore": 9}}

        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers=answers
        )

        [result] = results_for(db_session, assignment)
        assert AI_EVALUATION_KEY not in result.answers
        db_session.refresh(assignment)
        assert AI_EVALUATION_KEY not in assignment.answers

    def test_malformed_questions(self, db_session, student, teacher, make_assignment):
        section = ExamSection(
            title="Broken",
            type=SectionType.LISTENING,
            duration=30,
            questions=[{"id": "x", "type": "ESSAY"}],
            teacher_id=teacher.id,
        )
        db_session.add(section)
        db_session.commit()
        assignment = make_assignment(student, section, status=AttemptStatus.IN_PROGRESS)

        with pytest.raises(ValidationError):
            attempt_service.submit_attempt(
                db_session, assignment_id=assignment.id, student_id=student.id, answers={}
            )

    @pytest.mark.parametrize(
        "loose_question,answer,expected_score",
        [
            ({"type": "FILL_BLANK", "correctAnswer": 1990, "questionText": "Built in [BLANK]."}, "1990", 2),
            ({"type": "MCQ_SINGLE", "correctAnswer": "B", "points": None}, "B", 2),
            ({"type": "MCQ_SINGLE", "correctAnswer": ["B"]}, "B", 1),
        ],
    )
    def test_loosely_typed_questions_still_grade(
        self, db_session, student, teacher, make_assignment, loose_question, answer, expected_score
    ):
        section = ExamSection(
            title="Loose",
            type=SectionType.READING,
            duration=60,
            questions=[
                {"id": "loose", **loose_question},
                {"id": "tf", "type": "TRUE_FALSE_NOT_GIVEN", "correctAnswer": "FALSE"},
            ],
            teacher_id=teacher.id,
        )
        db_session.add(section)
        db_session.commit()
        assignment = make_assignment(student, section, status=AttemptStatus.IN_PROGRESS)

        ack = attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"loose": answer, "tf": "FALSE"},
        )

        assert ack.status == AttemptStatus.SUBMITTED
        [result] = results_for(db_session, assignment)
        assert result.score == expected_score
        assert result.total_score == 2
        assert result.answers == {"loose": answer, "tf": "FALSE"}


class TestSubmitWriting:
    def test_evaluated_inline(self, db_session, student, writing_section, make_assignment):
        assignment = make_assignment(student, writing_section, status=AttemptStatus.IN_PROGRESS)
        evaluator = FakeWritingEvaluator(band=6.5)

        attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"w1": ESSAY, "w2": ESSAY},
            evaluator=evaluator,
        )

        [tasks] = evaluator.calls
        assert [t.id for t in tasks] == ["Task 1", "Task 2"]
        assert tasks[0].description == "Summarise the bar chart on energy use."

        [result] = results_for(db_session, assignment)
        assert result.score == 6.5
        assert result.band_score == 6.5
        assert result.total_score == 9
        assert result.feedback["bandScore"] == 6.5
        assert set(result.feedback["tasks"]) == {"Task 1", "Task 2"}
        assert result.answers[AI_EVALUATION_KEY] == result.feedback

        db_session.refresh(assignment)
        assert assignment.score == 6.5
        assert assignment.answers[AI_EVALUATION_KEY]["bandScore"] == 6.5

    def test_provider_failure_still_submits(self, db_session, student, writing_section, make_assignment):
        assignment = make_assignment(student, writing_section, status=AttemptStatus.IN_PROGRESS)
        evaluator = FakeWritingEvaluator(error=ProviderExhausted("all models failed"))

        ack = attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"writing": ESSAY},
            evaluator=evaluator,
        )

        assert ack.status == AttemptStatus.SUBMITTED
        [result] = results_for(db_session, assignment)
        assert result.band_score == 0.0
        assert result.score == 0.0
        assert result.total_score == 9
        assert result.feedback is None
        assert AI_EVALUATION_KEY not in result.answers
        assert result.answers["writing"] == ESSAY

    def test_failure_enqueues_reevaluation(
        self, db_session, student, writing_section, make_assignment, monkeypatch
    ):
        queued = []
        monkeypatch.setattr(attempt_service.settings, "ENQUEUE_FAILED_WRITING_EVALUATIONS", True)
        monkeypatch.setattr(attempt_service, "enqueue_writing_evaluation", queued.append)
        assignment = make_assignment(student, writing_section, status=AttemptStatus.IN_PROGRESS)

        attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"w2": ESSAY},
            evaluator=FakeWritingEvaluator(error=ProviderExhausted("down")),
        )

        [result] = results_for(db_session, assignment)
        assert queued == [result.id]

    def test_queue_outage_does_not_fail_submission(
        self, db_session, student, writing_section, make_assignment, monkeypatch
    ):
        def unavailable(result_id):
            raise RedisError("connection refused")

        monkeypatch.setattr(attempt_service.settings, "ENQUEUE_FAILED_WRITING_EVALUATIONS", True)
        monkeypatch.setattr(attempt_service, "enqueue_writing_evaluation", unavailable)
        assignment = make_assignment(student, writing_section, status=AttemptStatus.IN_PROGRESS)

        ack = attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"w2": ESSAY},
            evaluator=FakeWritingEvaluator(error=ProviderExhausted("down")),
        )
        assert ack.status == AttemptStatus.SUBMITTED

    def test_blank_writing_skips_evaluator(self, db_session, student, writing_section, make_assignment):
        assignment = make_assignment(student, writing_section, status=AttemptStatus.IN_PROGRESS)
        evaluator = FakeWritingEvaluator()

        attempt_service.submit_attempt(
            db_session,
            assignment_id=assignment.id,
            student_id=student.id,
            answers={"w1": ""},
            evaluator=evaluator,
        )

        assert evaluator.calls == []
        [result] = results_for(db_session, assignment)
        assert result.band_score == 0.0
        assert result.total_score == 9


class TestReassign:
    def test_reset_keeps_results(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)
        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers=PERFECT_READING
        )

        reset = attempt_service.reassign_attempt(db_session, assignment_id=assignment.id)

        assert reset.status == AttemptStatus.ASSIGNED
        assert reset.answers == {}
        assert reset.score == 0
        assert reset.start_time is None
        assert reset.end_time is None
        assert len(results_for(db_session, assignment)) == 1

    def test_retake_appends_result(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=student.id)
        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers={"q1": "TRUE"}
        )
        attempt_service.reassign_attempt(db_session, assignment_id=assignment.id)
        attempt_service.start_attempt(db_session, assignment_id=assignment.id, student_id=student.id)
        attempt_service.submit_attempt(
            db_session, assignment_id=assignment.id, student_id=student.id, answers=PERFECT_READING
        )

        first, second = results_for(db_session, assignment)
        assert first.score == 1
        assert second.score == 5

    def test_reassign_unknown(self, db_session):
        with pytest.raises(NotFound):
            attempt_service.reassign_attempt(db_session, assignment_id=999)

    def test_staff_scoped_to_center(self, db_session, teacher, other_teacher, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.SUBMITTED)

        with pytest.raises(NotAuthorized):
            attempt_service.reassign_attempt(db_session, assignment_id=assignment.id, caller=other_teacher)
        db_session.refresh(assignment)
        assert assignment.status == AttemptStatus.SUBMITTED

        reset = attempt_service.reassign_attempt(db_session, assignment_id=assignment.id, caller=teacher)
        assert reset.status == AttemptStatus.ASSIGNED


class TestSaveHighlights:
    def test_save(self, db_session, student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section, status=AttemptStatus.IN_PROGRESS)
        highlights = {"passage-1": [{"start": 10, "end": 24}]}

        saved = attempt_service.save_highlights(
            db_session, assignment_id=assignment.id, student_id=student.id, highlights=highlights
        )
        assert saved.highlights == highlights

    def test_wrong_student(self, db_session, student, other_student, reading_section, make_assignment):
        assignment = make_assignment(student, reading_section)
        with pytest.raises(NotAuthorized):
            attempt_service.save_highlights(
                db_session, assignment_id=assignment.id, student_id=other_student.id, highlights={}
            )


class TestConcurrentSubmit:
    def test_second_submit_loses(self, tmp_path, monkeypatch):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'race.db'}",
            connect_args={"check_same_thread": False},
        )
        Base.metadata.create_all(bind=engine)
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

        with Session() as setup:
            student = User(username="racer", role=Role.STUDENT, center_id=1)
            section = ExamSection(
                title="Reading", type=SectionType.READING, duration=60, questions=READING_QUESTIONS
            )
            setup.add_all([student, section])
            setup.flush()
            assignment = ExamAssignment(
                student_id=student.id,
                section_id=section.id,
                status=AttemptStatus.IN_PROGRESS,
                answers={},
                score=0,
            )
            setup.add(assignment)
            setup.commit()
            student_id, assignment_id = student.id, assignment.id

        first, second = Session(), Session()
        real_score_answers = answer_evaluator.score_answers
        interleaved = []

        def score_with_interleaved_submit(questions, answers):
            # the other submission commits while this one is still grading
            if not interleaved:
                interleaved.append(True)
                attempt_service.submit_attempt(
                    second, assignment_id=assignment_id, student_id=student_id, answers=PERFECT_READING
                )
            return real_score_answers(questions, answers)

        monkeypatch.setattr(answer_evaluator, "score_answers", score_with_interleaved_submit)

        try:
            with pytest.raises(InvalidState):
                attempt_service.submit_attempt(
                    first, assignment_id=assignment_id, student_id=student_id, answers={"q1": "TRUE"}
                )
        finally:
            first.close()
            second.close()

        with Session() as check:
            results = check.query(ExamResult).filter(ExamResult.assignment_id == assignment_id).all()
            assert len(results) == 1
            assert results[0].score == 5
            assert check.get(ExamAssignment, assignment_id).status == AttemptStatus.SUBMITTED

        engine.dispose()
