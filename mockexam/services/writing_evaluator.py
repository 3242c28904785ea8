"""
AI Writing Evaluator
Scores IELTS writing tasks through Gemini with key rotation and model fallback
"""

import enum
import json
import logging
import math
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, NamedTuple, Optional, Sequence

from mockexam.core.config import settings
from mockexam.core.errors import (
    ParseFailure,
    ProviderError,
    ProviderExhausted,
    ProviderRateLimited,
    WritingEvaluationError,
)
from mockexam.schemas.writing import (
    CriterionScore,
    SectionEvaluationResult,
    WritingEvaluation,
    WritingTask,
)
from mockexam.services.band_converter import round_half_up
from mockexam.services.credential_pool import CredentialPool
from mockexam.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

# Responses shorter than this are treated as "no attempt"
MIN_RESPONSE_LENGTH = 2

MISSING_FEEDBACK = "No feedback available"
MISSING_OVERALL = "Evaluation completed."

CRITERIA = (
    "taskAchievement",
    "coherenceAndCohesion",
    "lexicalResource",
    "grammaticalRangeAndAccuracy",
)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")

# Global evaluator cache (shares one credential cursor across requests)
_evaluator_instance = None


# =============================================================================
# Prompt
# =============================================================================


def build_evaluation_prompt(task_description: str, student_response: str) -> str:
    word_count = len(student_response.split())

    return f"""You are an expert IELTS examiner. Evaluate the following IELTS Writing Task response according to the official IELTS band descriptors.

## Task Description:
{task_description or 'IELTS Writing Task'}

## Student Response ({word_count} words):
{student_response}

## Instructions:
Evaluate this response based on the four IELTS Writing assessment criteria:
1. Task Achievement (Task 1) / Task Response (Task 2)
2. Coherence and Cohesion
3. Lexical Resource
4. Grammatical Range and Accuracy

Award 0 for every criterion and for the overall band if the response is gibberish,
random characters, copied task text, completely off-topic, or not written in English.

Provide your evaluation as a single JSON object ONLY (no markdown, no explanations outside JSON):

{{
  "bandScore": <overall band score as a number between 0 and 9, can use .5 increments>,
  "taskAchievement": {{
    "score": <band score for this criterion>,
    "feedback": "<brief feedback for this criterion>"
  }},
  "coherenceAndCohesion": {{
    "score": <band score for this criterion>,
    "feedback": "<brief feedback for this criterion>"
  }},
  "lexicalResource": {{
    "score": <band score for this criterion>,
    "feedback": "<brief feedback for this criterion>"
  }},
  "grammaticalRangeAndAccuracy": {{
    "score": <band score for this criterion>,
    "feedback": "<brief feedback for this criterion>"
  }},
  "overallFeedback": "<2-3 sentence summary of the response quality>",
  "strengths": ["<strength 1>", "<strength 2>"],
  "areasForImprovement": ["<area 1>", "<area 2>"]
}}"""


# =============================================================================
# Response parsing
# =============================================================================


def _first_json_object(text: str) -> dict:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            obj = None
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    raise ParseFailure("Failed to parse AI evaluation response")


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return max(0.0, number)


def _text(value: Any, fallback: str) -> str:
    if value is None or value == "":
        return fallback
    return str(value)


def _text_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def _criterion(value: Any) -> CriterionScore:
    if not isinstance(value, dict):
        value = {}
    return CriterionScore(
        score=_number(value.get("score")),
        feedback=_text(value.get("feedback"), MISSING_FEEDBACK),
    )


def parse_evaluation(text: str) -> WritingEvaluation:
    """
    Turn model output into a WritingEvaluation.

    Markdown fences are stripped and the first JSON object is used. Any field
    that is missing or has the wrong type falls back to 0 or a placeholder;
    only text without a JSON object raises ParseFailure.
    """
    candidate = (text or "").strip()
    fenced = _FENCE_RE.search(candidate)
    if fenced:
        candidate = fenced.group(1).strip()

    parsed = _first_json_object(candidate)

    return WritingEvaluation(
        band_score=_number(parsed.get("bandScore")),
        task_achievement=_criterion(parsed.get("taskAchievement")),
        coherence_and_cohesion=_criterion(parsed.get("coherenceAndCohesion")),
        lexical_resource=_criterion(parsed.get("lexicalResource")),
        grammatical_range_and_accuracy=_criterion(parsed.get("grammaticalRangeAndAccuracy")),
        overall_feedback=_text(parsed.get("overallFeedback"), MISSING_OVERALL),
        strengths=_text_list(parsed.get("strengths")),
        areas_for_improvement=_text_list(parsed.get("areasForImprovement")),
    )


def no_attempt_evaluation() -> WritingEvaluation:
    feedback = "No attempt was made."
    return WritingEvaluation(
        band_score=0.0,
        task_achievement=CriterionScore(score=0.0, feedback=feedback),
        coherence_and_cohesion=CriterionScore(score=0.0, feedback=feedback),
        lexical_resource=CriterionScore(score=0.0, feedback=feedback),
        grammatical_range_and_accuracy=CriterionScore(score=0.0, feedback=feedback),
        overall_feedback="No attempt was made. The response was empty, so it was not evaluated.",
        strengths=[],
        areas_for_improvement=["Write a response to the task to receive a band score."],
    )


# =============================================================================
# Retry / fallback policy
# =============================================================================


class CallOutcome(enum.Enum):
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class CallResult(NamedTuple):
    outcome: CallOutcome
    evaluation: Optional[WritingEvaluation] = None
    error: Optional[Exception] = None


@dataclass
class FallbackPolicy:
    """
    Position in the model ladder.

    Each model gets at most one call per credential. A rate limit keeps the
    model and moves to the next credential; any other failure moves to the
    next model.
    """

    models: Sequence[str]
    credentials_per_model: int
    model_index: int = 0
    attempts_left: int = field(init=False)

    def __post_init__(self) -> None:
        self.attempts_left = self.credentials_per_model

    @property
    def exhausted(self) -> bool:
        return self.credentials_per_model <= 0 or self.model_index >= len(self.models)

    @property
    def current_model(self) -> str:
        return self.models[self.model_index]

    def record(self, outcome: CallOutcome) -> bool:
        """Advance past a failed call. Returns True when the next call should back off first."""
        self.attempts_left -= 1
        if outcome is CallOutcome.RATE_LIMITED and self.attempts_left > 0:
            return True
        self.model_index += 1
        self.attempts_left = self.credentials_per_model
        return False


# =============================================================================
# Evaluator
# =============================================================================


def task_weight(task_id: str) -> int:
    """Task 2 counts twice as much as Task 1."""
    return 2 if "task 2" in task_id.lower() else 1


class WritingEvaluator:
    def __init__(
        self,
        *,
        client: GeminiClient,
        credentials: CredentialPool,
        models: Sequence[str],
        backoff_seconds: float = 0.5,
        task_delay_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.credentials = credentials
        self.models = list(models)
        self.backoff_seconds = backoff_seconds
        self.task_delay_seconds = task_delay_seconds
        self._sleep = sleep

    def _attempt(self, prompt: str, model: str, api_key: str) -> CallResult:
        masked = CredentialPool.mask(api_key)
        logger.info(f"Attempting evaluation with model {model} (key {masked})")
        try:
            text = self.client.generate(prompt, model=model, api_key=api_key)
        except ProviderRateLimited as e:
            logger.warning(f"Model {model} rate limited (429) with key {masked}, rotating key")
            return CallResult(CallOutcome.RATE_LIMITED, error=e)
        except ProviderError as e:
            logger.error(f"Gemini call failed for model {model}: {e}")
            return CallResult(CallOutcome.FAILED, error=e)

        try:
            evaluation = parse_evaluation(text)
        except ParseFailure as e:
            logger.error(f"Unparseable evaluation from model {model}: {text[:200]!r}")
            return CallResult(CallOutcome.FAILED, error=e)
        return CallResult(CallOutcome.SUCCESS, evaluation=evaluation)

    def evaluate_task(self, description: str, response: str) -> WritingEvaluation:
        if not response or len(response.strip()) < MIN_RESPONSE_LENGTH:
            return no_attempt_evaluation()

        if not self.credentials:
            raise ProviderExhausted("Gemini API key not configured")

        prompt = build_evaluation_prompt(description, response)
        policy = FallbackPolicy(self.models, len(self.credentials))
        last_error: Optional[Exception] = None

        while not policy.exhausted:
            model = policy.current_model
            result = self._attempt(prompt, model, self.credentials.next_key())
            if result.outcome is CallOutcome.SUCCESS:
                return result.evaluation
            last_error = result.error
            if policy.record(result.outcome):
                self._sleep(self.backoff_seconds)

        logger.error("All Gemini models and keys failed")
        if isinstance(last_error, ParseFailure):
            raise last_error
        raise ProviderExhausted(
            f"All AI evaluation attempts failed: {last_error}"
        ) from last_error

    def evaluate_section(self, tasks: Sequence[WritingTask]) -> SectionEvaluationResult:
        """
        Evaluate tasks one after another and combine them into a section band.

        A failed task is skipped; the error is raised only if every task failed.
        """
        evaluations: dict[str, WritingEvaluation] = {}
        weighted_sum = 0.0
        total_weight = 0
        last_error: Optional[WritingEvaluationError] = None

        for index, task in enumerate(tasks):
            if index > 0:
                self._sleep(self.task_delay_seconds)
            try:
                evaluation = self.evaluate_task(task.description, task.response)
            except WritingEvaluationError as e:
                logger.error(f"Failed to evaluate task {task.id}: {e}")
                last_error = e
                continue

            evaluations[task.id] = evaluation
            weight = task_weight(task.id)
            weighted_sum += evaluation.band_score * weight
            total_weight += weight

        if tasks and not evaluations and last_error is not None:
            raise last_error

        band_score = 0.0
        if total_weight > 0:
            band_score = max(0.0, round_half_up(weighted_sum / total_weight * 2) / 2)

        return SectionEvaluationResult(band_score=band_score, tasks=evaluations)

    def close(self) -> None:
        self.client.close()


def get_writing_evaluator() -> WritingEvaluator:
    """
    Get or build the process-wide evaluator from settings.
    Also used as a FastAPI dependency so tests can override it.
    """
    global _evaluator_instance

    if _evaluator_instance is None:
        credentials = CredentialPool(settings.gemini_api_keys)
        if not credentials:
            logger.warning("GEMINI_API_KEY not configured. AI evaluation will not work.")
        else:
            logger.info(f"Loaded {len(credentials)} Gemini API key(s)")
        _evaluator_instance = WritingEvaluator(
            client=GeminiClient(),
            credentials=credentials,
            models=settings.gemini_models,
            backoff_seconds=settings.RATE_LIMIT_BACKOFF_SECONDS,
            task_delay_seconds=settings.WRITING_TASK_DELAY_SECONDS,
        )

    return _evaluator_instance
