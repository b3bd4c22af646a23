from __future__ import annotations

import io
import unittest

from multipart_body.body import BytesSource, ReaderSource
from multipart_body.exceptions import SourceReadError, StreamConsumedError
from multipart_body.incoming import IncomingBodyStream

from .hosts import FakeIncomingBody


class TestIncomingBodyStream(unittest.TestCase):
    def test_chunks(self) -> None:
        body = FakeIncomingBody([b"hello ", b"world"])
        s = IncomingBodyStream(body)

        self.assertEqual(s.chunk(100), b"hello ")
        self.assertEqual(s.chunk(3), b"wor")
        self.assertEqual(s.chunk(3), b"ld")
        self.assertIsNone(s.chunk(3))
        s.close()

    def test_stream_opened_once(self) -> None:
        body = FakeIncomingBody([b"abc"])
        with IncomingBodyStream(body) as s:
            s.to_bytes()
        self.assertEqual(body.streams_opened, 1)

    def test_to_bytes(self) -> None:
        body = FakeIncomingBody([b"a" * 10, b"b" * (3 * 1024 * 1024)])
        with IncomingBodyStream(body) as s:
            data = s.to_bytes()

        self.assertEqual(data, b"a" * 10 + b"b" * (3 * 1024 * 1024))
        self.assertTrue(all(n == 1024 * 1024 for n in body.input_stream.reads))

    def test_to_bytes_chunk_size(self) -> None:
        body = FakeIncomingBody([b"abcdefgh"])
        with IncomingBodyStream(body, config={"READ_CHUNK_SIZE": 3}) as s:
            self.assertEqual(list(s), [b"abc", b"def", b"gh"])

    def test_empty_body(self) -> None:
        with IncomingBodyStream(FakeIncomingBody()) as s:
            self.assertEqual(s.to_bytes(), b"")

    def test_release_order(self) -> None:
        body = FakeIncomingBody([b"abc"])
        s = IncomingBodyStream(body)
        s.to_bytes()
        s.close()

        self.assertEqual(body.log, ["stream released", "body released"])
        self.assertTrue(s.closed)

    def test_release_order_on_error(self) -> None:
        body = FakeIncomingBody([b"abc"], error=ConnectionResetError("reset"))
        with self.assertRaises(SourceReadError) as ctx:
            with IncomingBodyStream(body) as s:
                s.to_bytes()

        self.assertIsInstance(ctx.exception.__cause__, ConnectionResetError)
        self.assertEqual(body.log, ["stream released", "body released"])

    def test_close_twice(self) -> None:
        body = FakeIncomingBody()
        s = IncomingBodyStream(body)
        s.close()
        s.close()
        self.assertEqual(body.log, ["stream released", "body released"])

    def test_read_after_close(self) -> None:
        s = IncomingBodyStream(FakeIncomingBody([b"abc"]))
        s.close()
        with self.assertRaises(ValueError):
            s.chunk(10)

    def test_eof_error_is_end(self) -> None:
        body = FakeIncomingBody([b"abc"], error=EOFError())
        with IncomingBodyStream(body) as s:
            self.assertEqual(s.to_bytes(), b"abc")

    def test_stream_unavailable(self) -> None:
        body = FakeIncomingBody(stream_error=True)
        with self.assertRaises(SourceReadError) as ctx:
            IncomingBodyStream(body)
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertNotIsInstance(ctx.exception, StreamConsumedError)

        # We took ownership of the body, so it has been released.
        self.assertEqual(body.log, ["body released"])

    def test_invalid_chunk_length(self) -> None:
        with IncomingBodyStream(FakeIncomingBody([b"abc"])) as s:
            with self.assertRaises(ValueError):
                s.chunk(0)

    def test_invalid_config(self) -> None:
        body = FakeIncomingBody()
        with self.assertRaises(ValueError):
            IncomingBodyStream(body, config={"READ_CHUNK_SIZE": 0})
        # The body was not touched.
        self.assertEqual(body.streams_opened, 0)

    def test_repr(self) -> None:
        s = IncomingBodyStream(FakeIncomingBody())
        self.assertEqual(repr(s), "IncomingBodyStream(closed=False)")


class TestOutgoingVariants(unittest.TestCase):
    """Outgoing bodies don't stream, but can still be materialized."""

    def test_bytes(self) -> None:
        b = BytesSource(b"payload")
        self.assertIsNone(b.chunk(1024))
        self.assertEqual(b.to_bytes(), b"payload")

    def test_reader(self) -> None:
        r = ReaderSource(io.BytesIO(b"payload"))
        self.assertIsNone(r.chunk(1024))
        self.assertEqual(r.to_bytes(), b"payload")
