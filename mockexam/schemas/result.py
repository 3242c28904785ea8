# mockexam/schemas/result.py
from datetime import datetime
from typing import Any

from pydantic import BaseModel


class ResultPublic(BaseModel):
    id: int
    assignment_id: int | None = None
    student_id: int
    section_id: int
    score: float
    total_score: float
    band_score: float | None = None
    answers: dict[str, Any]
    feedback: dict[str, Any] | None = None
    submitted_at: datetime | None = None

    model_config = {"from_attributes": True}


class ResultList(BaseModel):
    results: list[ResultPublic]
    total: int


class ResultWithEvaluation(ResultPublic):
    ai_evaluation: dict[str, Any]
