"""Domain errors raised by the template cache, instance applier and analyzers.

Callers can catch CoachForgeError to handle any domain failure, or one of
the specific subclasses to map failures onto their own error surface.
"""


class CoachForgeError(Exception):
    """Base exception for all coachforge domain errors."""

    pass


class NotFoundError(CoachForgeError):
    """Raised when a template, version, instance or log does not exist."""

    pass


class UnauthorizedError(CoachForgeError):
    """Raised when the actor does not own the record being changed."""

    pass


class InvalidStateError(CoachForgeError):
    """Raised for illegal status transitions and malformed input.

    Covers edits on non-editable instances, out-of-range workout indexes,
    missing fingerprint fields and disallowed customizations.
    """

    pass


class ConflictError(CoachForgeError):
    """Raised when a concurrent writer already advanced a version chain."""

    pass


class GenerationError(CoachForgeError):
    """Raised when the completion service returns content that cannot be used."""

    pass
