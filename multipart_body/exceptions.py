from __future__ import annotations


class BodyError(Exception):
    """Base error class for everything raised while building or moving a
    message body.
    """
    pass


class SinkWriteError(BodyError, OSError):
    """This exception is raised when the output sink refuses an operation -
    opening the write stream, querying the write permit, writing or
    flushing.  The transfer is not retried.
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        if message is None:
            message = "outgoing body %s failed" % operation
        super().__init__(message)


class SourceReadError(BodyError, OSError):
    """This exception is raised when reading from a byte producer (a file,
    an arbitrary reader or an incoming stream) fails.
    """
    pass


class SourceClosed(BodyError, EOFError):
    """Raised by an input stream to signal that it was closed cleanly.

    This is not a failure: readers in this package translate it (and any
    other :class:`EOFError`) into an end-of-body marker.
    """
    pass


class MimeParseError(BodyError, ValueError):
    """This exception is raised when a media type string can't be parsed."""
    pass


class InvalidHeaderError(BodyError, ValueError):
    """This exception is raised when a part header has a name that is not
    an HTTP token, or a value that contains CR, LF or NUL.
    """
    pass


class StreamConsumedError(BodyError, RuntimeError):
    """A single-use handle (an incoming stream or a form reader) was asked
    for a second time.
    """
    pass
