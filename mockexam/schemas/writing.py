# mockexam/schemas/writing.py
from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CriterionScore(_CamelModel):
    score: float = 0.0
    feedback: str = ""


class WritingEvaluation(_CamelModel):
    """Evaluation of one writing task against the four IELTS criteria."""

    band_score: float = Field(default=0.0, alias="bandScore")
    task_achievement: CriterionScore = Field(alias="taskAchievement")
    coherence_and_cohesion: CriterionScore = Field(alias="coherenceAndCohesion")
    lexical_resource: CriterionScore = Field(alias="lexicalResource")
    grammatical_range_and_accuracy: CriterionScore = Field(alias="grammaticalRangeAndAccuracy")
    overall_feedback: str = Field(default="", alias="overallFeedback")
    strengths: list[str] = Field(default_factory=list)
    areas_for_improvement: list[str] = Field(default_factory=list, alias="areasForImprovement")


class SectionEvaluationResult(_CamelModel):
    band_score: float = Field(default=0.0, alias="bandScore")
    tasks: dict[str, WritingEvaluation] = Field(default_factory=dict)

    def to_payload(self) -> dict:
        """JSON-ready dict in the stored (camelCase) shape."""
        return self.model_dump(by_alias=True, mode="json")


class WritingTask(BaseModel):
    id: str
    description: str
    response: str
