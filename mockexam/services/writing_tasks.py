# mockexam/services/writing_tasks.py
from typing import Any

from mockexam.models.exam_section import ExamSection
from mockexam.schemas.writing import WritingTask

TASK_1_KEYS = ("w1", "task1")
TASK_2_KEYS = ("w2", "task2")
SINGLE_TASK_KEY = "writing"


def _first_answer(answers: dict[str, Any], keys: tuple[str, ...]) -> str | None:
    for key in keys:
        value = answers.get(key)
        if value:
            return str(value)
    return None


def _question_text(questions: Any, index: int) -> str | None:
    if not isinstance(questions, list) or len(questions) <= index:
        return None
    question = questions[index]
    if isinstance(question, dict):
        return question.get("questionText") or None
    return None


def extract_writing_tasks(answers: dict[str, Any], section: ExamSection) -> list[WritingTask]:
    """
    Build the task list from the reserved writing answer keys.

    ``w1``/``task1`` and ``w2``/``task2`` hold the two-task layout; ``writing``
    is read only when neither task key is present.
    """
    tasks: list[WritingTask] = []

    task1 = _first_answer(answers, TASK_1_KEYS)
    if task1:
        tasks.append(
            WritingTask(
                id="Task 1",
                description=_question_text(section.questions, 0) or "IELTS Writing Task 1",
                response=task1,
            )
        )

    task2 = _first_answer(answers, TASK_2_KEYS)
    if task2:
        tasks.append(
            WritingTask(
                id="Task 2",
                description=_question_text(section.questions, 1) or "IELTS Writing Task 2",
                response=task2,
            )
        )

    single = answers.get(SINGLE_TASK_KEY)
    if single and not tasks:
        tasks.append(
            WritingTask(
                id="Writing Task",
                description=section.description or "IELTS Writing Task",
                response=str(single),
            )
        )

    return tasks
