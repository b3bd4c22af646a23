from __future__ import annotations

import logging
from numbers import Number
from typing import TYPE_CHECKING, Union

from .exceptions import BodyError, SinkWriteError, SourceReadError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable, Iterator
    from types import TracebackType
    from typing import Any, Protocol, TypedDict

    class _Resource(Protocol):
        def __enter__(self) -> Any: ...
        def __exit__(
            self,
            exc_type: type[BaseException] | None,
            exc_value: BaseException | None,
            traceback: TracebackType | None,
        ) -> bool | None: ...

    class Pollable(_Resource, Protocol):
        """Readiness waiter handed out by an output stream."""
        def block(self) -> None: ...

    class OutputStream(_Resource, Protocol):
        """Flow-controlled sink: never write more than ``check_write()``."""
        def subscribe(self) -> Pollable: ...
        def check_write(self) -> int: ...
        def write(self, contents: bytes) -> None: ...
        def flush(self) -> None: ...

    class OutgoingBody(Protocol):
        def write(self) -> OutputStream: ...

    class SupportsRead(Protocol):
        def read(self, __n: int) -> bytes: ...

    class SupportsReadInto(Protocol):
        def readinto(self, __buffer: memoryview) -> int | None: ...

    Producer = Union[SupportsRead, SupportsReadInto]

    class WriterConfig(TypedDict, total=False):
        STREAM_CHUNK_SIZE: int


# Get logger for this module.
logger = logging.getLogger(__name__)

# Size of the chunks pulled from a reader-backed source (64 KiB).
STREAM_CHUNK_SIZE = 65536


def read_into(reader: Producer, buffer: memoryview) -> int:
    """
    Read from a pull-based producer into ``buffer`` and return the number of
    bytes stored; 0 means the producer is exhausted.  Producers offering
    ``readinto`` fill the buffer directly, others are asked to ``read``.
    """
    try:
        readinto = getattr(reader, "readinto", None)
        if readinto is not None:
            n = readinto(buffer)
            if n is None:
                raise SourceReadError("Body source has no data available but did not signal its end")
        else:
            data = reader.read(len(buffer))
            n = len(data)
            if n > len(buffer):
                raise SourceReadError("Body source returned %d bytes, more than the %d requested" % (n, len(buffer)))
            buffer[:n] = data
        if n < 0 or n > len(buffer):
            raise SourceReadError("Body source reported an invalid read length %r" % (n,))
    except BodyError:
        raise
    except Exception as e:
        logger.error("Reading from body source %r failed: %r", reader, e)
        raise SourceReadError("Failed to read from body source: %s" % e) from e
    return n


class BytesSource:
    """
    Outgoing body content that is already in memory.
    """

    def __init__(self, data: bytes = b"") -> None:
        self.data = bytes(data)

    def __len__(self) -> int:
        return len(self.data)

    def chunk(self, length: int) -> bytes | None:
        # Outgoing content has no streaming semantics.
        return None

    def to_bytes(self) -> bytes:
        return self.data

    def close(self) -> None:
        pass

    def __repr__(self) -> str:
        if len(self.data) > 32:
            v = repr(self.data[:32])[:-1] + "...'"
        else:
            v = repr(self.data)
        return "%s(%s)" % (self.__class__.__name__, v)


class ReaderSource:
    """
    Outgoing body content pulled from a reader, e.g. an open file or a
    :class:`~multipart_body.multipart.StreamingFormReader`.  The reader is
    owned by this object and can be read through only once.
    """

    def __init__(self, reader: Producer) -> None:
        self.reader = reader

    def readinto(self, buffer: memoryview) -> int:
        return read_into(self.reader, buffer)

    def chunk(self, length: int) -> bytes | None:
        # Readers are for outgoing bodies; they are not chunked here.
        return None

    def to_bytes(self, chunk_size: int = STREAM_CHUNK_SIZE) -> bytes:
        """
        Drain the reader into memory.
        """
        body = bytearray()
        buf = bytearray(chunk_size)
        view = memoryview(buf)
        while True:
            n = self.readinto(view)
            if n == 0:
                break
            body += view[:n]
        return bytes(body)

    def close(self) -> None:
        close = getattr(self.reader, "close", None)
        if close is not None:
            close()

    def __repr__(self) -> str:
        return "%s(reader=%r)" % (self.__class__.__name__, self.reader)


#: Where the bytes of an outgoing body come from.  Exactly one of the two.
BodySource = Union[BytesSource, ReaderSource]


class ChunkedWriter:
    """
    Writes a :data:`BodySource` to an outgoing body whose output stream only
    accepts as many bytes as its current write permit allows.

    For every source the output stream is opened once; then, until the
    source is exhausted, we block on the stream's pollable, ask for the
    permit, and write at most that many bytes.  Finally the stream is
    flushed and we wait for it once more, so the host sees the write
    complete.  Any failure of the stream raises :class:`SinkWriteError`,
    any failure of a reader raises :class:`SourceReadError`; nothing is
    retried.

    :param outgoing_body: object whose ``write()`` opens the output stream.

    :param config: Dictionary overriding :attr:`DEFAULT_CONFIG`.
    """

    #: This is the default configuration for our writer.
    DEFAULT_CONFIG: WriterConfig = {
        "STREAM_CHUNK_SIZE": STREAM_CHUNK_SIZE,
    }

    def __init__(self, outgoing_body: OutgoingBody, config: WriterConfig | None = None) -> None:
        self.outgoing_body = outgoing_body
        self.bytes_written = 0

        self.config: WriterConfig = self.DEFAULT_CONFIG.copy()
        if config:
            self.config.update(config)

        chunk_size = self.config["STREAM_CHUNK_SIZE"]
        if not isinstance(chunk_size, Number) or chunk_size < 1:
            raise ValueError("STREAM_CHUNK_SIZE must be a positive number, not %r" % chunk_size)

    def write(self, source: BodySource) -> None:
        if isinstance(source, BytesSource):
            if not source.data:
                # Don't open a write stream for an empty body.
                logger.debug("Empty body, nothing to write")
                return
            self._write_chunks(iter((memoryview(source.data),)))
        elif isinstance(source, ReaderSource):
            self._write_chunks(self._pull(source))
        else:
            raise TypeError("Expected a BytesSource or ReaderSource, not %r" % (source,))

    def _pull(self, source: ReaderSource) -> Iterator[memoryview]:
        # The buffer is reused: each chunk is written out completely before
        # the next one is pulled.
        view = memoryview(bytearray(self.config["STREAM_CHUNK_SIZE"]))
        while True:
            n = source.readinto(view)
            if n == 0:
                logger.debug("Body source exhausted")
                return
            logger.debug("Pulled %d bytes from body source", n)
            yield view[:n]

    def _write_chunks(self, chunks: Iterator[memoryview]) -> None:
        out = self._call("open", self.outgoing_body.write)
        with out:
            pollable = self._call("subscribe", out.subscribe)
            with pollable:
                for chunk in chunks:
                    while len(chunk) > 0:
                        self._call("block", pollable.block)
                        permit = self._call("check_write", out.check_write)
                        if permit < 0:
                            raise SinkWriteError("check_write", "Output stream returned a negative permit %r" % permit)

                        n = min(permit, len(chunk))
                        if n > 0:
                            logger.debug("Writing %d bytes (permit %d)", n, permit)
                            self._call("write", out.write, bytes(chunk[:n]))
                            self.bytes_written += n
                        chunk = chunk[n:]

                self._call("flush", out.flush)
                self._call("block", pollable.block)
                self._call("check_write", out.check_write)

        logger.info("Finished writing body (%d bytes written)", self.bytes_written)

    def _call(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return func(*args)
        except BodyError:
            raise
        except Exception as e:
            logger.error("Outgoing body %s failed: %r", operation, e)
            raise SinkWriteError(operation) from e

    def __repr__(self) -> str:
        return "%s(outgoing_body=%r, bytes_written=%d)" % (
            self.__class__.__name__,
            self.outgoing_body,
            self.bytes_written,
        )


def write_body(outgoing_body: OutgoingBody, source: BodySource, config: WriterConfig | None = None) -> int:
    """
    Write ``source`` to ``outgoing_body`` and return the number of bytes
    written.  See :class:`ChunkedWriter`.
    """
    writer = ChunkedWriter(outgoing_body, config=config)
    writer.write(source)
    return writer.bytes_written
