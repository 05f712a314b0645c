"""
Error taxonomy for the generation pipeline.

Validation errors are rejected immediately; provider errors are split into
transient (retried) and terminal (explicit failure payloads). Cancellation
is deliberately outside the ProviderError hierarchy.
"""


class TalkreelError(Exception):
    """Base class for all pipeline errors."""


class ScriptValidationError(TalkreelError):
    """Malformed or missing request field."""


class ProviderError(TalkreelError):
    """A generative provider reported a failure."""

    def __init__(self, message: str, status: int = None):
        super().__init__(message)
        self.status = status


class TransientProviderError(ProviderError):
    """Network failure, rate limit or 5xx from a provider. Safe to retry."""


class ProviderNotConfiguredError(ProviderError):
    """The provider has no API key configured."""


class GenerationCancelled(TalkreelError):
    """The caller cancelled the generation."""


class IllegalTransitionError(TalkreelError):
    """The orchestrator attempted a state change its transition table forbids."""


class InvalidJobIdError(TalkreelError):
    """A job id that does not carry the expected prefix."""
