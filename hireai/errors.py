"""Exceptions raised by the HireAI core."""


class HireAIError(Exception):
    """Base class for HireAI errors."""


class LLMUnavailableError(HireAIError):
    """No LLM credentials are configured."""


class LLMResponseError(HireAIError):
    """The LLM answered with something that could not be used."""


class ScoringPreconditionError(HireAIError):
    """The job or its question set was not resolved before scoring."""


class SessionStateError(HireAIError):
    """An operation is not allowed in the session's current state."""


class CameraUnavailableError(HireAIError):
    """Camera access was denied or the device could not be opened."""


class ResumeExtractionError(HireAIError):
    """Text could not be extracted from an uploaded resume."""
