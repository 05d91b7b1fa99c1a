"""Exception hierarchy for the orchestrator."""

from typing import Optional


class StudioError(Exception):
    """Base class for orchestrator errors."""


class ClassificationFailure(StudioError):
    """Remote interpretation errored or returned unparseable output."""


class GenerationFailure(StudioError):
    """A downstream generation call errored or timed out."""

    def __init__(self, message: str, capability: Optional[str] = None, model: Optional[str] = None):
        super().__init__(message)
        self.capability = capability
        self.model = model


class PersistenceFailure(StudioError):
    """A read or write against the persistent store failed."""


class TurnInProgressError(StudioError):
    """A turn was submitted while the thread was not idle."""
