"""
Shared fixtures: in-memory database, users, sections and writing evaluator fakes.
"""

import os

# Must be set before mockexam.core.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("GEMINI_API_KEY", "")
os.environ.setdefault("ENQUEUE_FAILED_WRITING_EVALUATIONS", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from mockexam.db.base import Base
from mockexam import models  # noqa: F401
from mockexam.models.user import User, Role
from mockexam.models.exam_section import ExamSection, SectionType
from mockexam.models.assignment import ExamAssignment, AttemptStatus
from mockexam.schemas.writing import CriterionScore, SectionEvaluationResult, WritingEvaluation

TEST_DATABASE_URL = "sqlite://"

READING_QUESTIONS = [
    {"id": "q1", "type": "TRUE_FALSE_NOT_GIVEN", "questionText": "The museum opened in 1900.", "correctAnswer": "TRUE", "points": 1},
    {"id": "q2", "type": "MCQ_SINGLE", "questionText": "Who founded it?", "correctAnswer": "B", "points": 1},
    {"id": "q3", "type": "FILL_BLANK", "questionText": "Visitors enter through the [BLANK].", "correctAnswer": "garden", "points": 1},
    {
        "id": "q4",
        "type": "MCQ_MULTIPLE",
        "instruction": "Choose TWO letters, A-E.",
        "questionText": "Which TWO facilities are free?",
        "correctAnswer": ["A", "C"],
        "points": 1,
    },
]

WRITING_QUESTIONS = [
    {"id": "wq1", "type": "SHORT_ANSWER", "questionText": "Summarise the bar chart on energy use.", "correctAnswer": "N/A"},
    {"id": "wq2", "type": "SHORT_ANSWER", "questionText": "Discuss remote work and give your opinion.", "correctAnswer": "N/A"},
]


def make_evaluation(band: float) -> WritingEvaluation:
    criterion = CriterionScore(score=band, feedback="ok")
    return WritingEvaluation(
        band_score=band,
        task_achievement=criterion,
        coherence_and_cohesion=criterion,
        lexical_resource=criterion,
        grammatical_range_and_accuracy=criterion,
        overall_feedback="Solid response.",
        strengths=["clear position"],
        areas_for_improvement=["range of vocabulary"],
    )


class FakeWritingEvaluator:
    """Stands in for WritingEvaluator at the service boundary."""

    def __init__(self, band: float = 6.5, error: Exception | None = None):
        self.band = band
        self.error = error
        self.calls = []

    def evaluate_section(self, tasks):
        self.calls.append(list(tasks))
        if self.error is not None:
            raise self.error
        return SectionEvaluationResult(
            band_score=self.band,
            tasks={task.id: make_evaluation(self.band) for task in tasks},
        )


class ScriptedClient:
    """GeminiClient replacement returning (or raising) scripted steps in order."""

    def __init__(self, steps):
        self.steps = list(steps)
        self.calls = []

    def generate(self, prompt, *, model, api_key):
        self.calls.append((model, api_key))
        step = self.steps.pop(0)
        if isinstance(step, Exception):
            raise step
        return step

    def close(self):
        pass


@pytest.fixture(scope="function")
def db_session():
    """Create a test database session."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _add(db, obj):
    db.add(obj)
    db.commit()
    db.refresh(obj)
    return obj


@pytest.fixture
def student(db_session):
    return _add(db_session, User(username="student1", role=Role.STUDENT, center_id=1))


@pytest.fixture
def other_student(db_session):
    return _add(db_session, User(username="student2", role=Role.STUDENT, center_id=2))


@pytest.fixture
def teacher(db_session):
    return _add(db_session, User(username="teacher1", role=Role.TEACHER, center_id=1))


@pytest.fixture
def other_teacher(db_session):
    return _add(db_session, User(username="teacher2", role=Role.TEACHER, center_id=2))


@pytest.fixture
def reading_section(db_session, teacher):
    return _add(
        db_session,
        ExamSection(
            title="Academic Reading 1",
            type=SectionType.READING,
            duration=60,
            questions=READING_QUESTIONS,
            teacher_id=teacher.id,
            center_id=1,
        ),
    )


@pytest.fixture
def writing_section(db_session, teacher):
    return _add(
        db_session,
        ExamSection(
            title="Academic Writing",
            type=SectionType.WRITING,
            description="Task 1 chart, Task 2 essay",
            duration=60,
            questions=WRITING_QUESTIONS,
            teacher_id=teacher.id,
            center_id=1,
        ),
    )


@pytest.fixture
def make_assignment(db_session):
    def _make(student, section, status=AttemptStatus.ASSIGNED, **fields):
        return _add(
            db_session,
            ExamAssignment(
                student_id=student.id,
                section_id=section.id,
                status=status,
                answers={},
                score=0,
                **fields,
            ),
        )

    return _make
