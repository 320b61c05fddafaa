"""Exceptions raised by tarstrap.

Errors fall into a small taxonomy. Precondition errors, format errors and
path escapes mean an operation cannot make sane progress, so they are never
subject to the continue-on-error policy. Everything else raised while
handling a single entry (including OSError from the file system) may be
logged and skipped when that policy is enabled.
"""


class ArchiveError(Exception):
    """Base class for all tarstrap errors."""
    pass


class PreconditionError(ArchiveError):
    """An operation was requested in a state where it cannot proceed."""
    pass


class InvalidDestinationError(PreconditionError):
    pass


class DestinationExistsError(PreconditionError):
    pass


class HandleStateError(PreconditionError):
    """An archive handle was used in the wrong mode or after close."""
    pass


class InvalidEntryError(PreconditionError):
    pass


class UnknownFormatError(PreconditionError):
    """The archive format could not be determined."""
    pass


class ArchiveFormatError(ArchiveError):
    """The archive stream is malformed or truncated."""
    pass


class UnknownEntryTypeError(ArchiveFormatError):
    def __init__(self, name, typeflag):
        super(UnknownEntryTypeError, self).__init__(
            '%s: unknown type flag: %r' % (name, typeflag))
        self.name = name
        self.typeflag = typeflag


class PolicyError(ArchiveError):
    pass


class OverwriteError(PolicyError):
    """Refused to replace an existing path."""
    pass


class PathEscapeError(PolicyError):
    """An entry would be materialized outside the destination root."""
    pass


class ShortContentError(ArchiveError):
    """A file had less content than its header declares."""
    pass


class UnsupportedEntryError(ArchiveError):
    pass


class EntryNotFoundError(ArchiveError):
    pass


class StaleContentError(ArchiveError):
    """Entry content was read after the archive advanced past it."""
    pass


class StopWalk(Exception):
    """Raised by a walk visitor to end the walk early. Not an error."""
    pass


# Errors which always abort the whole operation
FATAL_ERRORS = (PreconditionError, ArchiveFormatError, PathEscapeError)
