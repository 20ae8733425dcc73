"""Shared error types for the autofinish package."""


class AutoFinishError(Exception):
    """Base exception for autofinish errors.

    Use this for user-facing errors that should have actionable messages.
    """

    pass


class InputError(AutoFinishError):
    """Input text is unusable: empty, not text, or contains no tasks."""

    pass


class InvalidInput(InputError):
    """Raised by the input parser for empty or non-string input."""

    pass


class SequencingDegradation(AutoFinishError):
    """Internal sequencing fault.

    Never surfaced to callers: the sequencer logs it and falls back to the
    original task order.
    """

    pass


class ConfirmationExhausted(AutoFinishError):
    """Confirmation retries ran out without a decisive answer."""

    pass


class AgentDispatchError(AutoFinishError):
    """The agent channel failed to deliver a prompt or return a reply."""

    pass


class ValidationError(AutoFinishError):
    """The quality collaborator failed while validating a completion."""

    pass
