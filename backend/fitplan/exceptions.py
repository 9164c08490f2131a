"""
Errors raised while producing a daily plan.

An incomplete profile is not an error: the generator answers it with a
guidance result instead.
"""


class PlanGenerationError(Exception):
    """Base class for every failure surfaced by the plan generator."""


class ConfigurationError(PlanGenerationError):
    """The text service cannot be reached because the process is misconfigured."""


class InvalidProfileError(PlanGenerationError, ValueError):
    """The caller passed something that is not a health profile."""


class ServiceUnavailableError(PlanGenerationError):
    """The text service kept failing after every retry was spent."""

    def __init__(self, message: str, attempts: int = 0, last_error: Exception = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ResponseDecodeError(PlanGenerationError):
    """The service answered, but the text is not JSON even after cleaning."""

    def __init__(self, message: str, raw_text: str, cleaned_text: str):
        super().__init__(message)
        self.raw_text = raw_text
        self.cleaned_text = cleaned_text


class ResponseShapeError(PlanGenerationError):
    """The JSON parsed but lacks the meal or workout structure we need."""


class UnknownGenerationError(PlanGenerationError):
    """Anything unexpected. The message is safe to show to a user."""

    USER_MESSAGE = "Failed to generate fitness plan. Please try again later."

    def __init__(self, message: str = USER_MESSAGE):
        super().__init__(message)
