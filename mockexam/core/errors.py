# mockexam/core/errors.py
"""
Error taxonomy shared by services, the HTTP layer and workers.

Lifecycle and validation errors reach the caller as 4xx responses.
Provider errors stay inside the writing evaluator except for
ProviderExhausted and ParseFailure.
"""


class ExamError(Exception):
    status_code = 500
    code = "exam_error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__


class NotFound(ExamError):
    status_code = 404
    code = "not_found"


class ValidationError(ExamError):
    status_code = 400
    code = "validation_error"


class InvalidState(ExamError):
    status_code = 409
    code = "invalid_state"


class NotAuthorized(ExamError):
    status_code = 403
    code = "not_authorized"


class WritingEvaluationError(ExamError):
    status_code = 502
    code = "writing_evaluation_failed"


class ProviderExhausted(WritingEvaluationError):
    """Every model/credential combination failed."""

    code = "provider_exhausted"


class ParseFailure(WritingEvaluationError):
    """The provider answered but no JSON object could be extracted."""

    code = "parse_failure"


class ProviderError(WritingEvaluationError):
    """A single non-retryable provider call failure (HTTP, transport, timeout)."""

    code = "provider_error"


class ProviderRateLimited(ProviderError):
    """HTTP 429 from the provider; resolved by rotating credentials."""

    code = "provider_rate_limited"
