"""
In-memory stand-ins for the host's body and stream handles.  They record
what was done to them so tests can check the write protocol and the order
in which handles are released.
"""

from __future__ import annotations

import itertools
from typing import TYPE_CHECKING

from multipart_body.exceptions import SourceClosed

if TYPE_CHECKING:
    from collections.abc import Iterable
    from typing import Any


class FakePollable:
    def __init__(self, log: list[str]) -> None:
        self.log = log
        self.blocks = 0

    def block(self) -> None:
        self.blocks += 1

    def __enter__(self) -> FakePollable:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.log.append("pollable released")


class FakeOutputStream:
    """
    Output stream handing out the given permits in turn (cycling).  Fails
    with ``OSError`` in the operation named by ``fail_on``.
    """

    def __init__(self, permits: Iterable[int] = (4096,), fail_on: str | None = None, log: list[str] | None = None) -> None:
        self.permits = itertools.cycle(list(permits))
        self.fail_on = fail_on
        self.log = log if log is not None else []
        self.writes: list[bytes] = []
        self.permit_checks = 0
        self.flushes = 0
        self.pollable: FakePollable | None = None
        self._permit: int | None = None

    def _maybe_fail(self, operation: str) -> None:
        if self.fail_on == operation:
            raise OSError("%s failed" % operation)

    def subscribe(self) -> FakePollable:
        self._maybe_fail("subscribe")
        self.log.append("subscribe")
        self.pollable = FakePollable(self.log)
        return self.pollable

    def check_write(self) -> int:
        self._maybe_fail("check_write")
        self.permit_checks += 1
        self._permit = next(self.permits)
        return self._permit

    def write(self, contents: bytes) -> None:
        self._maybe_fail("write")
        assert isinstance(contents, bytes)
        assert self._permit is not None, "write() without checking the permit"
        assert len(contents) <= self._permit, "wrote %d bytes with a permit of %d" % (len(contents), self._permit)
        self._permit = None
        self.writes.append(contents)

    def flush(self) -> None:
        self._maybe_fail("flush")
        self.flushes += 1
        self.log.append("flush")

    @property
    def data(self) -> bytes:
        return b"".join(self.writes)

    def __enter__(self) -> FakeOutputStream:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.log.append("stream released")


class FakeOutgoingBody:
    def __init__(self, stream: FakeOutputStream | None = None, fail: bool = False) -> None:
        self.stream = stream if stream is not None else FakeOutputStream()
        self.fail = fail
        self.opened = 0

    def write(self) -> FakeOutputStream:
        if self.fail:
            raise RuntimeError("outgoing body already finished")
        self.opened += 1
        if self.opened > 1:
            raise RuntimeError("write() may only be called once")
        return self.stream


class FakeInputStream:
    """
    Input stream serving ``chunks`` (split further if a read asks for less),
    then raising ``error`` or signalling a clean close.
    """

    def __init__(self, chunks: Iterable[bytes], log: list[str], error: Exception | None = None) -> None:
        self.chunks = [c for c in chunks if c]
        self.log = log
        self.error = error
        self.reads: list[int] = []
        self.released = False

    def blocking_read(self, length: int) -> bytes:
        assert not self.released, "read from a released stream"
        self.reads.append(length)
        if not self.chunks:
            if self.error is not None:
                raise self.error
            raise SourceClosed()

        data = self.chunks[0][:length]
        rest = self.chunks[0][length:]
        if rest:
            self.chunks[0] = rest
        else:
            self.chunks.pop(0)
        return data

    def __enter__(self) -> FakeInputStream:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.released = True
        self.log.append("stream released")


class FakeIncomingBody:
    def __init__(self, chunks: Iterable[bytes] = (), error: Exception | None = None, stream_error: bool = False) -> None:
        self.log: list[str] = []
        self.input_stream = FakeInputStream(chunks, self.log, error=error)
        self.stream_error = stream_error
        self.streams_opened = 0
        self.released = False

    def stream(self) -> FakeInputStream:
        self.streams_opened += 1
        if self.stream_error or self.streams_opened > 1:
            raise RuntimeError("stream() already called")
        return self.input_stream

    def __enter__(self) -> FakeIncomingBody:
        return self

    def __exit__(self, *exc: Any) -> None:
        assert self.streams_opened == 0 or self.stream_error or self.input_stream.released, (
            "body released before its stream"
        )
        self.released = True
        self.log.append("body released")
