# mockexam/services/answer_evaluator.py
"""
Correctness and points for objective questions.

Pure functions over parsed question definitions and the raw answers dict
submitted by the exam UI.
"""
from dataclasses import dataclass
from typing import Any, Iterable

from mockexam.schemas.question import (
    Question,
    SingleChoiceQuestion,
    MultiChoiceQuestion,
    TextQuestion,
    MatchingQuestion,
)
from mockexam.services.text_matching import matches_text_answer

# instruction words that reveal how many options a multi-select expects
CARDINALITY_HINTS = (
    ("TWO", 2),
    ("THREE", 3),
    ("FOUR", 4),
    ("FIVE", 5),
)


@dataclass(frozen=True)
class ScoreSummary:
    score: int
    total_score: int


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == {}


def points_for(question: Question) -> int:
    points = question.points or 1
    if isinstance(question, MultiChoiceQuestion) and points == 1 and question.instruction:
        instruction = question.instruction.upper()
        for word, hinted in CARDINALITY_HINTS:
            if word in instruction:
                return hinted
    return points


def is_correct(question: Question, answer: Any) -> bool:
    """Strict pass/fail for one question."""
    correct = question.correct_answer
    if _is_blank(answer) or _is_blank(correct):
        return False

    match question:
        case SingleChoiceQuestion():
            return isinstance(correct, str) and answer == correct

        case MultiChoiceQuestion():
            if not isinstance(answer, list) or not isinstance(correct, list):
                return False
            if not all(isinstance(option, str) for option in answer):
                return False
            return len(answer) == len(correct) and set(answer) == set(correct)

        case TextQuestion():
            if not isinstance(correct, str) or isinstance(answer, (list, dict)):
                return False
            return matches_text_answer(
                answer,
                correct,
                question_text=question.question_text,
                instruction=question.instruction,
            )

        case MatchingQuestion():
            if isinstance(answer, str) and isinstance(correct, str):
                return answer == correct
            if isinstance(answer, dict) and isinstance(correct, dict):
                return answer == correct
            return False

    raise TypeError(f"unsupported question variant: {type(question).__name__}")


def award_points(question: Question, answer: Any) -> int:
    """
    Points earned for one answer.

    Multi-select earns one point per correct option chosen, capped at the
    question's points, whether or not the whole selection is right.
    """
    points = points_for(question)
    if (
        isinstance(question, MultiChoiceQuestion)
        and isinstance(answer, list)
        and isinstance(question.correct_answer, list)
    ):
        correct_options = set(question.correct_answer)
        chosen_correct = {
            option for option in answer if isinstance(option, str) and option in correct_options
        }
        return min(len(chosen_correct), points)
    return points if is_correct(question, answer) else 0


def score_answers(questions: Iterable[Question], answers: dict[str, Any]) -> ScoreSummary:
    score = 0
    total_score = 0
    for question in questions:
        total_score += points_for(question)
        score += award_points(question, answers.get(question.id))
    return ScoreSummary(score=score, total_score=total_score)
