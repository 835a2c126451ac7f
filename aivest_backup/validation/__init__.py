"""Validation package."""

from aivest_backup.validation.envelope import (
    EnvelopeIssue,
    EnvelopeValidator,
    MalformedEnvelopeError,
    ParsedEnvelope,
)

__all__ = [
    "EnvelopeIssue",
    "EnvelopeValidator",
    "MalformedEnvelopeError",
    "ParsedEnvelope",
]
