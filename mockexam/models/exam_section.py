# mockexam/models/exam_section.py
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func
from mockexam.db.base import Base


class SectionType:
    LISTENING = "LISTENING"
    READING = "READING"
    WRITING = "WRITING"


class ExamSection(Base):
    """Authored exam section. Read-only input for the grading core."""

    __tablename__ = "exam_sections"

    id = Column(Integer, primary_key=True, index=True)
    teacher_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    center_id = Column(Integer, nullable=True, index=True)

    title = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # minutes

    # list of question definitions, camelCase keys as authored
    questions = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
    )
