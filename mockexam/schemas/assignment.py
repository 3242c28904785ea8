# mockexam/schemas/assignment.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class AssignmentCreate(BaseModel):
    student_id: int
    section_id: int


class SubmitAnswers(BaseModel):
    """Question id -> answer (string, list of option ids, or sub-id map)."""

    answers: dict[str, Any]


class SaveHighlights(BaseModel):
    highlights: dict[str, Any]


class SectionSummary(BaseModel):
    id: int
    title: str
    type: str
    description: str | None = None
    duration: int

    model_config = {"from_attributes": True}


class AssignmentPublic(BaseModel):
    id: int
    student_id: int
    section_id: int
    status: str  # ASSIGNED / IN_PROGRESS / SUBMITTED
    start_time: datetime | None = None
    end_time: datetime | None = None
    answers: dict[str, Any] | None = None
    highlights: dict[str, Any] | None = None
    score: float | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class AssignmentStarted(AssignmentPublic):
    remaining_seconds: int


class AssignmentList(BaseModel):
    assignments: list[AssignmentPublic]
    total: int


class SubmissionAck(BaseModel):
    message: str
    assignment_id: int
    status: str
