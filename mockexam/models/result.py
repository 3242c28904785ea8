# mockexam/models/result.py
from sqlalchemy import Column, Integer, DateTime, Float, JSON, ForeignKey
from sqlalchemy.sql import func
from mockexam.db.base import Base


class ExamResult(Base):
    """
    Append-only record of one submission.

    Reassigning an attempt never deletes these rows; every retake adds a new
    one for the same student and section.
    """

    __tablename__ = "exam_results"

    id = Column(Integer, primary_key=True, index=True)

    assignment_id = Column(Integer, ForeignKey("exam_assignments.id"), nullable=True, index=True)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    section_id = Column(Integer, ForeignKey("exam_sections.id"), nullable=False, index=True)

    score = Column(Float, nullable=False, default=0)
    total_score = Column(Float, nullable=False, default=0)
    band_score = Column(Float, nullable=True)

    answers = Column(JSON, nullable=False, default=dict)
    # AI writing evaluation payload, NULL until an evaluation completes
    feedback = Column(JSON, nullable=True)

    submitted_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
