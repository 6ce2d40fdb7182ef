"""Error kinds raised during a combination session."""


class CombinationError(Exception):
    """Base class for every error raised by the combination pipeline."""


class ExternalCapabilityFailure(CombinationError, RuntimeError):
    """The comparator or merger (LLM / embedding model) failed."""


class ValidationFailure(CombinationError, ValueError):
    """Input rejected before any external call, or an invalid session action."""


class SessionAbort(CombinationError):
    """The decision-maker cancelled; all session state is discarded."""
