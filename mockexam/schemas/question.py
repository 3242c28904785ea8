"""
Question definitions as stored in ``ExamSection.questions``.

Each variant carries the correct-answer shape of its question family; the
``type`` field selects the variant. Authored JSON is loosely typed (numeric
answers, null points, a list where a string is expected), so answer keys are
accepted in any JSON shape and the evaluator marks a mismatched shape wrong.
Only an unknown ``type`` is rejected.
"""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, (str, list, dict)):
        return value
    # 1990 -> "1990", True -> "True"
    return str(value)


def _item_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


def _loose_answer(value: Any) -> Any:
    if isinstance(value, list):
        return [_item_text(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _item_text(item) for key, item in value.items()}
    return _as_text(value)


AnswerKey = Annotated[
    Union[str, list[str], dict[str, str], None],
    BeforeValidator(_loose_answer),
]


class QuestionBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: Annotated[str, BeforeValidator(_as_text)]
    question_text: str | None = Field(default=None, alias="questionText")
    instruction: str | None = None
    points: int | None = None
    correct_answer: AnswerKey = Field(default=None, alias="correctAnswer")


class SingleChoiceQuestion(QuestionBase):
    type: Literal["MCQ_SINGLE", "TRUE_FALSE_NOT_GIVEN", "YES_NO_NOT_GIVEN"]


class MultiChoiceQuestion(QuestionBase):
    type: Literal["MCQ_MULTIPLE"]


class TextQuestion(QuestionBase):
    type: Literal[
        "FILL_BLANK",
        "SHORT_ANSWER",
        "SENTENCE_COMPLETION",
        "SUMMARY_COMPLETION",
        "NOTE_COMPLETION",
        "TABLE_COMPLETION",
        "FLOW_CHART_COMPLETION",
        "FORM_COMPLETION",
    ]


class MatchingQuestion(QuestionBase):
    # scalar for a single item, sub-id -> option-id map for a grouped item
    type: Literal["MATCHING", "DIAGRAM_LABELING", "PLAN_MAP_LABELING"]


Question = Annotated[
    Union[SingleChoiceQuestion, MultiChoiceQuestion, TextQuestion, MatchingQuestion],
    Field(discriminator="type"),
]

_questions_adapter = TypeAdapter(list[Question])


def parse_questions(raw: list[dict] | None) -> list[Question]:
    return _questions_adapter.validate_python(raw or [])
