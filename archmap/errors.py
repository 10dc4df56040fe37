"""Exception types raised by the analysis pipeline."""

from __future__ import annotations


class ArchmapError(RuntimeError):
    """Base class for pipeline errors."""


class ConfigError(ArchmapError):
    """Configuration file missing, unreadable or of the wrong shape."""


class ListingError(ArchmapError, ValueError):
    """The source listing handed to the orchestrator is missing or invalid."""


class DecompositionError(ArchmapError):
    """A unit set violates the coverage invariant."""


class CollaboratorError(ArchmapError):
    """An external collaborator returned output that could not be used."""
