# mockexam/models/assignment.py
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    JSON,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.sql import func
from mockexam.db.base import Base


class AttemptStatus:
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"


# reserved answers key holding the last AI writing evaluation
AI_EVALUATION_KEY = "_aiEvaluation"


class ExamAssignment(Base):
    """One student's attempt at one section."""

    __tablename__ = "exam_assignments"
    __table_args__ = (UniqueConstraint("student_id", "section_id"),)

    id = Column(Integer, primary_key=True, index=True)

    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("exam_sections.id"), nullable=False, index=True)

    # ASSIGNED / IN_PROGRESS / SUBMITTED
    status = Column(String(20), nullable=False, default=AttemptStatus.ASSIGNED, index=True)

    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)

    answers = Column(JSON, nullable=False, default=dict)
    highlights = Column(JSON, nullable=True)
    score = Column(Float, nullable=False, default=0)

    # optimistic lock: every UPDATE checks and bumps it
    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )

    __mapper_args__ = {"version_id_col": version}
