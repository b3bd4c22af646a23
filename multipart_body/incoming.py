from __future__ import annotations

import logging
from contextlib import ExitStack
from numbers import Number
from typing import TYPE_CHECKING, Union

from .body import BytesSource, ReaderSource
from .exceptions import BodyError, SourceReadError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator
    from types import TracebackType
    from typing import Any, Protocol, TypedDict

    class InputStream(Protocol):
        def blocking_read(self, __len: int) -> bytes: ...
        def __enter__(self) -> Any: ...
        def __exit__(self, *args: Any) -> bool | None: ...

    class IncomingBody(Protocol):
        def stream(self) -> InputStream: ...
        def __enter__(self) -> Any: ...
        def __exit__(self, *args: Any) -> bool | None: ...

    class IncomingConfig(TypedDict, total=False):
        READ_CHUNK_SIZE: int


# Get logger for this module.
logger = logging.getLogger(__name__)


class IncomingBodyStream:
    """
    Reads the body of an incoming request or response.

    The host hands out the body's input stream only once, and that stream
    is a child of the body: it must be released before the body is.  This
    object takes ownership of ``incoming_body``, opens its stream right
    away, and releases both - stream first - when it is closed or when its
    ``with`` block ends.

    :param incoming_body: the host body; ``stream()`` must not have been
                          called on it yet.

    :param config: Dictionary overriding :attr:`DEFAULT_CONFIG`.
    """

    #: This is the default configuration for incoming bodies.
    DEFAULT_CONFIG: IncomingConfig = {
        "READ_CHUNK_SIZE": 1024 * 1024,
    }

    def __init__(self, incoming_body: IncomingBody, config: IncomingConfig | None = None) -> None:
        self.config: IncomingConfig = self.DEFAULT_CONFIG.copy()
        if config:
            self.config.update(config)

        chunk_size = self.config["READ_CHUNK_SIZE"]
        if not isinstance(chunk_size, Number) or chunk_size < 1:
            raise ValueError("READ_CHUNK_SIZE must be a positive number, not %r" % chunk_size)

        # The exit stack unwinds last-in first-out, so the stream is
        # released before the body.  If the stream can't be opened, the
        # body we now own is released on the way out.
        with ExitStack() as stack:
            stack.enter_context(incoming_body)
            self._incoming_body = incoming_body
            try:
                stream = incoming_body.stream()
            except BodyError:
                raise
            except Exception as e:
                logger.error("Could not open the incoming body stream: %r", e)
                raise SourceReadError("Could not open the incoming body stream: %s" % e) from e
            stack.enter_context(stream)
            self._input_stream = stream
            self._resources = stack.pop_all()

        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def chunk(self, length: int) -> bytes | None:
        """
        Read up to ``length`` bytes, blocking until some are available.
        Returns ``None`` once the stream has been closed by the other side.
        """
        if self._closed:
            raise ValueError("I/O operation on a closed body")
        if length < 1:
            raise ValueError("Chunk length must be positive, not %r" % (length,))

        try:
            data = self._input_stream.blocking_read(length)
        except EOFError:
            logger.debug("Incoming body stream closed")
            return None
        except BodyError:
            raise
        except Exception as e:
            logger.error("Incoming body read failed: %r", e)
            raise SourceReadError("input_stream read failed: %r" % (e,)) from e

        logger.debug("Read %d bytes from incoming body", len(data))
        return bytes(data)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            data = self.chunk(self.config["READ_CHUNK_SIZE"])
            if data is None:
                return
            yield data

    def to_bytes(self) -> bytes:
        """
        Read the rest of the body into memory.
        """
        return b"".join(self)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._resources.close()

    def __enter__(self) -> IncomingBodyStream:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return "%s(closed=%r)" % (self.__class__.__name__, self._closed)


#: A message body: outgoing content, or a live incoming stream.  Only the
#: incoming variant answers ``chunk()`` with data.
Body = Union[BytesSource, ReaderSource, IncomingBodyStream]
