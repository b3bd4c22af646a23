# This is the canonical package information.
__author__ = "Andrew Dunham"
__license__ = "Apache"
__copyright__ = "Copyright (c) 2012-2013, Andrew Dunham"

# We get the version from a sub-file that can be automatically generated.
from ._version import __version__
from .body import BodySource, BytesSource, ChunkedWriter, ReaderSource, write_body
from .exceptions import (
    BodyError,
    InvalidHeaderError,
    MimeParseError,
    SinkWriteError,
    SourceClosed,
    SourceReadError,
    StreamConsumedError,
)
from .headers import MimeType, guess_mime
from .incoming import Body, IncomingBodyStream
from .multipart import (
    Form,
    Part,
    ReaderState,
    StreamingForm,
    StreamingFormReader,
    StreamingPart,
    generate_boundary,
)

__all__ = (
    "__version__",
    "Body",
    "BodyError",
    "BodySource",
    "BytesSource",
    "ChunkedWriter",
    "Form",
    "IncomingBodyStream",
    "InvalidHeaderError",
    "MimeParseError",
    "MimeType",
    "Part",
    "ReaderSource",
    "ReaderState",
    "SinkWriteError",
    "SourceClosed",
    "SourceReadError",
    "StreamConsumedError",
    "StreamingForm",
    "StreamingFormReader",
    "StreamingPart",
    "generate_boundary",
    "guess_mime",
    "write_body",
)
