"""Exception hierarchy for the signing subsystem.

Every error raised while canonicalizing, signing or coordinating derives
from ``SigningError`` so callers can catch the family at once.
"""

from __future__ import annotations


class SigningError(Exception):
    """Base class for signing-subsystem failures."""


class UnsupportedSignerError(SigningError, TypeError):
    """The value passed as a signer is not a recognised backend."""

    def __init__(self, signer: object) -> None:
        super().__init__(f"Unsupported signer: {type(signer).__name__}")
        self.signer = signer


class AddressResolutionError(SigningError):
    """The signer backend could not produce an address."""


class UnrecognizedActionTypeError(SigningError, ValueError):
    """The action ``type`` tag is not part of the closed set."""

    def __init__(self, action_type: object) -> None:
        super().__init__(f"Unrecognized action type: {action_type!r}")
        self.action_type = action_type


class InvalidActionError(SigningError, ValueError):
    """The action is structurally wrong for its tag."""


class SigningBackendError(SigningError):
    """The backend failed while signing (declined, unreachable, malformed)."""

    def __init__(self, message: str, last_error: Exception | None = None) -> None:
        super().__init__(message)
        self.last_error = last_error


class CoordinationCancelledError(SigningError):
    """A multi-sig round was cancelled before every signature arrived."""
