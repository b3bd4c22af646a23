from __future__ import annotations

import io
import logging
import os
import secrets
import string
from collections import deque
from enum import IntEnum
from typing import TYPE_CHECKING

from .body import BytesSource, ReaderSource
from .exceptions import StreamConsumedError
from .headers import CONTENT_DISPOSITION, CONTENT_TYPE, MimeType, build_header_list, guess_mime

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable

    from .body import BodySource, Producer
    from .headers import HeaderList

# Get logger for this module.
logger = logging.getLogger(__name__)

CRLF = b"\r\n"
CRLF_CRLF = b"\r\n\r\n"
BOUNDARY_EXT = b"--"

BOUNDARY_PREFIX = "--FormBoundary"
BOUNDARY_LENGTH = 10
BOUNDARY_CHARS = string.ascii_letters + string.digits


class ReaderState(IntEnum):
    """States of the :class:`StreamingFormReader`."""

    PART_HEADER = 0
    PART_CONTENT = 1
    PART_TRAILER = 2
    FINISHED = 3
    DONE = 4


def generate_boundary(length: int = BOUNDARY_LENGTH) -> str:
    """
    Make a new boundary: ``--FormBoundary`` followed by ``length`` random
    alphanumeric characters.

    Nothing checks that the boundary does not occur inside a part; that is
    up to the caller.
    """
    return BOUNDARY_PREFIX + "".join(secrets.choice(BOUNDARY_CHARS) for _ in range(length))


def _to_bytes(value: str | bytes) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    return bytes(value)


def closing_delimiter(boundary: str) -> bytes:
    return BOUNDARY_EXT + boundary.encode("latin-1") + BOUNDARY_EXT


class BasePart:
    """
    The fields shared by :class:`Part` and :class:`StreamingPart`, with the
    fluent setters for them.  Every setter returns the part itself.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        self._filename: str | None = None
        self._mime: MimeType | None = None
        self._headers: HeaderList = []

    @property
    def file_name(self) -> str | None:
        return self._filename

    @property
    def content_type(self) -> MimeType | None:
        return self._mime

    @property
    def header_list(self) -> HeaderList:
        return list(self._headers)

    def mime(self, mime: MimeType) -> BasePart:
        if not isinstance(mime, MimeType):
            raise TypeError("Expected a MimeType, not %r; use mime_str() for strings" % (mime,))
        self._mime = mime
        return self

    def mime_str(self, mime: str) -> BasePart:
        """
        Set the media type from a string.  Raises :class:`MimeParseError` if
        it can't be parsed, in which case the part is left unchanged.
        """
        self._mime = MimeType.parse(mime)
        return self

    def filename(self, name: str) -> BasePart:
        self._filename = name
        return self

    def headers(self, headers: Iterable[tuple[str, str | bytes]]) -> BasePart:
        """
        Append extra headers to this part.  All of them are validated before
        any is added, so on :class:`InvalidHeaderError` the part is left
        unchanged.
        """
        self._headers.extend(build_header_list(headers))
        return self

    def build_header(self, boundary: str) -> bytes:
        """
        Render everything that goes before the content of this part: the
        boundary line, the content-disposition and content-type headers and
        any extra headers, ending with the blank line.
        """
        buf = bytearray()
        buf += BOUNDARY_EXT + boundary.encode("latin-1") + CRLF
        buf += ("%s: form-data; name=" % CONTENT_DISPOSITION).encode("latin-1")
        buf += _to_bytes(self.key)

        # NOTE: the file name is written as-is; quotes in it are not escaped.
        if self._filename is not None:
            buf += b'; filename="' + _to_bytes(self._filename) + b'"'

        if self._mime is not None:
            buf += CRLF + ("%s: %s" % (CONTENT_TYPE, self._mime)).encode("latin-1")

        for name, value in self._headers:
            buf += CRLF + name.encode("latin-1") + b": " + value

        buf += CRLF_CRLF
        return bytes(buf)


class Part(BasePart):
    """
    A form field whose content is held in memory.

    :param key: The field name.

    :param value: The content; text is encoded as UTF-8.
    """

    def __init__(self, key: str, value: str | bytes) -> None:
        super().__init__(key)
        self.value = _to_bytes(value)

    @classmethod
    def file(cls, key: str, path: str | os.PathLike[str]) -> Part:
        """
        Read a whole file into a new part.  The media type is guessed from
        the extension and the file name is set to the base name of
        ``path``.
        """
        logger.info("Reading file %r into part %r", path, key)
        with open(path, "rb") as f:
            data = f.read()

        part = cls(key, data).mime(guess_mime(path))
        name = os.path.basename(os.fspath(path))
        if name:
            part.filename(name)
        return part

    def __repr__(self) -> str:
        return "%s(key=%r, file_name=%r, content_type=%r, size=%d)" % (
            self.__class__.__name__,
            self.key,
            self._filename,
            self._mime,
            len(self.value),
        )


class Form:
    """
    A ``multipart/form-data`` body built entirely in memory.

    :param boundary: The boundary to use.  A random one is generated by
                     default.
    """

    def __init__(self, boundary: str | None = None) -> None:
        self.parts: list[Part] = []
        self._boundary = boundary if boundary is not None else generate_boundary()
        self._consumed = False

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        return "multipart/form-data; boundary=%s" % self._boundary

    def text(self, key: str, value: str | bytes) -> Form:
        self.parts.append(Part(key, value))
        return self

    def file(self, key: str, path: str | os.PathLike[str]) -> Form:
        self.parts.append(Part.file(key, path))
        return self

    def part(self, part: Part) -> Form:
        self.parts.append(part)
        return self

    def build(self) -> bytes:
        """
        Encode all parts, in the order they were added, into one buffer.
        The form can only be built once.
        """
        if self._consumed:
            raise StreamConsumedError("This form has already been built")
        self._consumed = True

        parts, self.parts = self.parts, []
        buf = bytearray()
        for part in parts:
            buf += part.build_header(self._boundary)
            buf += part.value
            buf += CRLF
        buf += closing_delimiter(self._boundary)

        logger.debug("Built form with %d parts (%d bytes)", len(parts), len(buf))
        return bytes(buf)

    def into_body(self) -> BytesSource:
        return BytesSource(self.build())

    def __repr__(self) -> str:
        return "%s(boundary=%r, parts=%r)" % (self.__class__.__name__, self._boundary, self.parts)


class StreamingPart(BasePart):
    """
    A form field whose content is either in memory or pulled from a reader
    while the body is being sent.  A reader-backed part owns its reader and
    can only be sent once.

    :param key: The field name.

    :param content: A :class:`BytesSource` or :class:`ReaderSource`.
    """

    def __init__(self, key: str, content: BodySource) -> None:
        if not isinstance(content, (BytesSource, ReaderSource)):
            raise TypeError("Expected a BytesSource or ReaderSource, not %r" % (content,))
        super().__init__(key)
        self.content = content

    @classmethod
    def text(cls, key: str, value: str | bytes) -> StreamingPart:
        """
        Create a part with in-memory content.  Use this for small fields.
        """
        return cls(key, BytesSource(_to_bytes(value)))

    @classmethod
    def from_reader(cls, key: str, reader: Producer | ReaderSource) -> StreamingPart:
        """
        Create a part whose content is read from ``reader`` - anything with
        ``readinto()`` or ``read()`` - in chunks while the form is sent::

            part = StreamingPart.from_reader("file", open("large_file.bin", "rb"))
            part.filename("large_file.bin").mime_str("application/octet-stream")
        """
        if not isinstance(reader, ReaderSource):
            reader = ReaderSource(reader)
        return cls(key, reader)

    @classmethod
    def file(cls, key: str, path: str | os.PathLike[str]) -> StreamingPart:
        """
        Create a part streamed from a file on disk.  The file is opened
        here but not read.
        """
        logger.info("Opening file %r for part %r", path, key)
        f = open(path, "rb")
        try:
            part = cls.from_reader(key, f).mime(guess_mime(path))
            name = os.path.basename(os.fspath(path))
            if name:
                part.filename(name)
        except Exception:
            f.close()
            raise
        return part

    def close(self) -> None:
        self.content.close()

    def __repr__(self) -> str:
        return "%s(key=%r, file_name=%r, content_type=%r, content=%r)" % (
            self.__class__.__name__,
            self.key,
            self._filename,
            self._mime,
            self.content,
        )


class StreamingForm:
    """
    A ``multipart/form-data`` body that is produced piece by piece instead
    of being built in memory.  Use this to upload large files.

    :param boundary: The boundary to use.  A random one is generated by
                     default.
    """

    def __init__(self, boundary: str | None = None) -> None:
        self.parts: list[StreamingPart] = []
        self._boundary = boundary if boundary is not None else generate_boundary()
        self._consumed = False

    @property
    def boundary(self) -> str:
        return self._boundary

    @property
    def content_type(self) -> str:
        return "multipart/form-data; boundary=%s" % self._boundary

    def text(self, key: str, value: str | bytes) -> StreamingForm:
        self.parts.append(StreamingPart.text(key, value))
        return self

    def part(self, part: StreamingPart) -> StreamingForm:
        self.parts.append(part)
        return self

    def file(self, key: str, path: str | os.PathLike[str]) -> StreamingForm:
        self.parts.append(StreamingPart.file(key, path))
        return self

    def into_reader(self) -> StreamingFormReader:
        """
        Hand the parts over to a :class:`StreamingFormReader`, which produces
        the body on demand.  This can only be done once.
        """
        if self._consumed:
            raise StreamConsumedError("This form has already been turned into a reader")
        self._consumed = True

        parts, self.parts = self.parts, []
        return StreamingFormReader(parts, self._boundary)

    def into_body(self) -> ReaderSource:
        return ReaderSource(self.into_reader())

    def __repr__(self) -> str:
        return "%s(boundary=%r, parts=%r)" % (self.__class__.__name__, self._boundary, self.parts)


class StreamingFormReader(io.RawIOBase):
    """
    A readable binary stream producing a multipart body from a queue of
    :class:`StreamingPart` objects.

    Each part goes through PART_HEADER, PART_CONTENT and PART_TRAILER; when
    the queue is empty the reader moves to FINISHED, emits the closing
    delimiter, and stays DONE from then on, where every read returns 0.

    Fixed fragments (a header block, the CRLF after content, the closing
    delimiter) are kept in a pending buffer and handed out over as many
    reads as the caller's buffer size requires; the pending buffer is
    always emptied before the state machine moves on.  Reader-backed
    content is read straight into the caller's buffer, and a part's reader
    is closed once its content has been sent.
    """

    def __init__(self, parts: Iterable[StreamingPart], boundary: str) -> None:
        super().__init__()
        self._parts: deque[StreamingPart] = deque(parts)
        self.boundary = boundary
        self.state = ReaderState.PART_HEADER

        self._pending = b""
        self._pending_offset = 0

        # Offset into the content of an in-memory part.
        self._content_offset = 0

    def readable(self) -> bool:
        return True

    @property
    def remaining_parts(self) -> int:
        return len(self._parts)

    def _drain_pending(self, buf: memoryview) -> int:
        remaining = len(self._pending) - self._pending_offset
        if remaining <= 0:
            return 0

        n = min(remaining, len(buf))
        buf[:n] = self._pending[self._pending_offset : self._pending_offset + n]
        self._pending_offset += n

        # Clear pending if fully drained.
        if self._pending_offset >= len(self._pending):
            self._pending = b""
            self._pending_offset = 0
        return n

    def _set_pending(self, data: bytes) -> None:
        self._pending = data
        self._pending_offset = 0

    def _set_state(self, state: ReaderState) -> None:
        logger.debug("Form reader: %s -> %s", self.state.name, state.name)
        self.state = state

    def readinto(self, buffer: bytearray | memoryview) -> int:  # type: ignore[override]
        if self.closed:
            raise ValueError("I/O operation on closed form reader")

        buf = memoryview(buffer).cast("B")
        if len(buf) == 0:
            return 0

        # First drain any pending bytes.
        drained = self._drain_pending(buf)
        if drained > 0:
            return drained

        while True:
            if self.state == ReaderState.PART_HEADER:
                if self._parts:
                    part = self._parts[0]
                    logger.debug("Starting part %r", part.key)
                    self._set_pending(part.build_header(self.boundary))
                    self._content_offset = 0
                    self._set_state(ReaderState.PART_CONTENT)
                    return self._drain_pending(buf)

                # No more parts, write the closing delimiter.
                self._set_state(ReaderState.FINISHED)

            elif self.state == ReaderState.PART_CONTENT:
                if not self._parts:
                    self._set_state(ReaderState.FINISHED)
                    continue

                content = self._parts[0].content
                if isinstance(content, BytesSource):
                    data = content.data
                    remaining = len(data) - self._content_offset
                    if remaining <= 0:
                        self._set_state(ReaderState.PART_TRAILER)
                        continue

                    n = min(remaining, len(buf))
                    buf[:n] = data[self._content_offset : self._content_offset + n]
                    self._content_offset += n
                    if self._content_offset >= len(data):
                        self._set_state(ReaderState.PART_TRAILER)
                    return n

                elif isinstance(content, ReaderSource):
                    n = content.readinto(buf)
                    if n == 0:
                        # Reader exhausted, move on to the trailer.
                        self._set_state(ReaderState.PART_TRAILER)
                        continue
                    return n

                else:  # pragma: no cover
                    raise TypeError("Unknown part content %r" % (content,))

            elif self.state == ReaderState.PART_TRAILER:
                part = self._parts.popleft()
                logger.debug("Finished part %r", part.key)
                self._set_pending(CRLF)
                self._set_state(ReaderState.PART_HEADER)
                # The next part is still sent if closing this one fails.
                part.close()
                return self._drain_pending(buf)

            elif self.state == ReaderState.FINISHED:
                self._set_pending(closing_delimiter(self.boundary))
                self._set_state(ReaderState.DONE)
                return self._drain_pending(buf)

            else:
                return 0

    def close(self) -> None:
        """
        Close the reader and the readers of every part not yet sent.
        """
        if self.closed:
            return

        first_error: Exception | None = None
        try:
            while self._parts:
                part = self._parts.popleft()
                try:
                    part.close()
                except Exception as e:
                    logger.warning("Error closing part %r: %r", part.key, e)
                    if first_error is None:
                        first_error = e
        finally:
            super().close()

        if first_error is not None:
            raise first_error

    def __repr__(self) -> str:
        return "%s(boundary=%r, state=%s, remaining_parts=%d)" % (
            self.__class__.__name__,
            self.boundary,
            self.state.name,
            len(self._parts),
        )
