# mockexam/services/text_matching.py
"""
Comparison rules for typed (fill-in) answers.

The rules are plain data so they can be tested and swapped on their own:

* number words one..ten are interchangeable with digits when the
  instruction allows "word and/or a number";
* a blank that starts a sentence needs the sentence-start capitalisation of
  the correct answer;
* a mid-sentence blank accepts the exact answer, an all-lowercase or an
  all-uppercase spelling, but not other casings ("Museum" for "museum").
"""
import re
from typing import Callable

NUMBER_WORDS = {
    "one": "1",
    "two": "2",
    "three": "3",
    "four": "4",
    "five": "5",
    "six": "6",
    "seven": "7",
    "eight": "8",
    "nine": "9",
    "ten": "10",
}

WORD_OR_NUMBER_PATTERN = re.compile(r"word\s+(and/or|or|and)\s+(a\s+)?number", re.IGNORECASE)

BLANK_MARKER = "[BLANK]"

# blank at the very start (after optional bullets), after a period, or at a line start
SENTENCE_START_PATTERNS = (
    re.compile(r"^[•\-\s]*\[BLANK\]", re.IGNORECASE),
    re.compile(r"\.\s*\[BLANK\]", re.IGNORECASE),
    re.compile(r"\n\s*\[BLANK\]", re.IGNORECASE),
)

TextRule = Callable[[str, str], bool]


def _exact(student: str, correct: str) -> bool:
    return student == correct


def _all_lowercase(student: str, correct: str) -> bool:
    return student == student.lower() and student.lower() == correct.lower()


def _all_uppercase(student: str, correct: str) -> bool:
    return student == student.upper() and student.lower() == correct.lower()


MID_SENTENCE_RULES: tuple[TextRule, ...] = (_exact, _all_lowercase, _all_uppercase)


def allows_number_words(instruction: str | None) -> bool:
    return bool(instruction) and WORD_OR_NUMBER_PATTERN.search(instruction) is not None


def blank_starts_sentence(question_text: str | None) -> bool:
    if not question_text:
        return False
    return any(pattern.search(question_text) for pattern in SENTENCE_START_PATTERNS)


def numbers_equivalent(student: str, correct: str) -> bool:
    student_lower = student.lower()
    correct_lower = correct.lower()
    if NUMBER_WORDS.get(student_lower) == correct_lower:
        return True
    if NUMBER_WORDS.get(correct_lower) == student_lower:
        return True
    return student_lower == correct_lower


def sentence_start_form(correct: str) -> str:
    """The only spelling accepted when the blank opens a sentence."""
    if not correct:
        return correct
    first = correct[0]
    if first == first.lower():
        return first.upper() + correct[1:]
    return correct


def matches_text_answer(
    student_answer,
    correct_answer,
    *,
    question_text: str | None = None,
    instruction: str | None = None,
) -> bool:
    student = str(student_answer).strip()
    correct = str(correct_answer).strip()

    if allows_number_words(instruction) and numbers_equivalent(student, correct):
        return True

    if blank_starts_sentence(question_text):
        return student == sentence_start_form(correct)

    return any(rule(student, correct) for rule in MID_SENTENCE_RULES)
