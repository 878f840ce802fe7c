"""
Exception hierarchy for Voice Pruner.

Only :class:`ConfigurationError` is fatal. Everything else is either handled
where it is raised or surfaced to the user by the command layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from voice_pruner.pruning.prune_engine import PruneResult


class VoicePrunerError(Exception):
    """Base exception for Voice Pruner."""


class ConfigurationError(VoicePrunerError):
    """Raised when startup cannot continue (missing token, unreachable platform)."""


class StaleReference(VoicePrunerError):
    """Raised for an event or request naming an entity no longer in the mirror."""


class PermissionDenied(VoicePrunerError):
    """Raised when the bot lost a permission between deciding and acting."""


class TransientError(VoicePrunerError):
    """Raised for rate limits and network failures on a single remote call."""


class NotFound(VoicePrunerError):
    """Raised when a request names a channel or role outside the caller's guild."""


class Forbidden(VoicePrunerError):
    """Raised when the invoking user lacks the permission a request requires."""


class PartialFailure(VoicePrunerError):
    """Raised when a prune finished but some removals failed.

    Attributes:
        result: The aggregate :class:`PruneResult` that contained errors.
        detail: Human readable summary of the failures.
    """

    def __init__(self, result: "PruneResult", detail: str) -> None:
        super().__init__(detail)
        self.result = result
        self.detail = detail


class NotAVoiceChannel(VoicePrunerError):
    """Raised when a prune request names a channel that is not a voice channel."""


class Unmonitored(VoicePrunerError):
    """Raised when a prune request names a voice channel the bot does not monitor."""
