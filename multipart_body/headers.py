from __future__ import annotations

import logging
import mimetypes
import os
from typing import TYPE_CHECKING

from .exceptions import InvalidHeaderError, MimeParseError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable
    from typing import TypeAlias

    HeaderList: TypeAlias = "list[tuple[str, bytes]]"

# Get logger for this module.
logger = logging.getLogger(__name__)

CONTENT_DISPOSITION = "content-disposition"
CONTENT_TYPE = "content-type"

# fmt: off
# Token chars according to RFC 7230, section 3.2.6.  Header names and the
# pieces of a media type must be made of these.
TOKEN_CHARS_SET = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "abcdefghijklmnopqrstuvwxyz"
    "0123456789"
    "!#$%&'*+-.^_`|~")
# fmt: on

TAB = b"\t"[0]
SPACE = b" "[0]
DEL = b"\x7f"[0]


def is_token(value: str) -> bool:
    return len(value) > 0 and all(c in TOKEN_CHARS_SET for c in value)


class MimeType:
    """
    A parsed media type such as ``text/plain; charset=utf-8``.

    The type, subtype and parameter names are case-insensitive and are
    stored lower-cased.  Parameter values keep their case and are
    re-quoted on output when they are not plain tokens.
    """

    def __init__(self, type_: str, subtype: str, params: Iterable[tuple[str, str]] = ()) -> None:
        if not is_token(type_) or not is_token(subtype):
            raise MimeParseError("Invalid media type: %r/%r" % (type_, subtype))
        self._type = type_.lower()
        self._subtype = subtype.lower()
        self._params: list[tuple[str, str]] = []
        for name, value in params:
            if not is_token(name):
                raise MimeParseError("Invalid media type parameter name: %r" % (name,))
            # Header blocks are written as latin-1, keep values to visible ASCII.
            if any(not (" " <= c <= "~") and c != "\t" for c in value):
                raise MimeParseError("Invalid character in media type parameter %r" % (name,))
            self._params.append((name.lower(), value))

    @classmethod
    def parse(cls, value: str) -> MimeType:
        """
        Parse a media type string.  Raises :class:`MimeParseError` if the
        string isn't of the form ``type/subtype`` followed by optional
        ``; name=value`` parameters.
        """
        if not isinstance(value, str):
            raise MimeParseError("Media type must be a string, not %r" % (value,))

        essence, _, rest = value.partition(";")
        type_, slash, subtype = essence.strip().partition("/")
        if not slash:
            raise MimeParseError("Media type %r has no subtype" % (value,))

        return cls(type_, subtype, _parse_params(value, rest))

    @property
    def type(self) -> str:
        return self._type

    @property
    def subtype(self) -> str:
        return self._subtype

    @property
    def essence(self) -> str:
        """The media type without parameters, e.g. ``text/plain``."""
        return "%s/%s" % (self._type, self._subtype)

    @property
    def params(self) -> list[tuple[str, str]]:
        return list(self._params)

    def get_param(self, name: str) -> str | None:
        name = name.lower()
        for key, value in self._params:
            if key == name:
                return value
        return None

    def __str__(self) -> str:
        out = self.essence
        for name, value in self._params:
            if not is_token(value):
                value = '"%s"' % value.replace("\\", "\\\\").replace('"', '\\"')
            out += "; %s=%s" % (name, value)
        return out

    def __eq__(self, other: object) -> bool:
        if isinstance(other, MimeType):
            return str(self) == str(other)
        else:
            return NotImplemented

    def __hash__(self) -> int:
        return hash(str(self))

    def __repr__(self) -> str:
        return "%s(%r)" % (self.__class__.__name__, str(self))


def _parse_params(source: str, rest: str) -> list[tuple[str, str]]:
    params: list[tuple[str, str]] = []
    i = 0
    length = len(rest)
    while i < length:
        # Skip whitespace and empty parameters, e.g. "text/plain; ; a=b".
        if rest[i] in " \t;":
            i += 1
            continue

        eq = rest.find("=", i)
        if eq == -1:
            raise MimeParseError("Parameter without a value in %r" % (source,))
        name = rest[i:eq].strip()
        i = eq + 1

        if i < length and rest[i] == '"':
            # Quoted string, with backslash escapes.
            chars = []
            i += 1
            while True:
                if i >= length:
                    raise MimeParseError("Unterminated quoted parameter in %r" % (source,))
                c = rest[i]
                if c == "\\" and i + 1 < length:
                    chars.append(rest[i + 1])
                    i += 2
                elif c == '"':
                    i += 1
                    break
                else:
                    chars.append(c)
                    i += 1
            value = "".join(chars)

            # Only whitespace may follow the closing quote.
            end = rest.find(";", i)
            if end == -1:
                end = length
            if rest[i:end].strip():
                raise MimeParseError("Garbage after quoted parameter in %r" % (source,))
            i = end
        else:
            end = rest.find(";", i)
            if end == -1:
                end = length
            value = rest[i:end].strip()
            i = end
            if not is_token(value):
                raise MimeParseError("Invalid parameter value %r in %r" % (value, source))

        params.append((name, value))
    return params


APPLICATION_OCTET_STREAM = MimeType("application", "octet-stream")
TEXT_PLAIN = MimeType("text", "plain")


def guess_mime(path: str | os.PathLike[str]) -> MimeType:
    """
    Guess the media type of a file from its extension, falling back to
    ``application/octet-stream``.
    """
    guessed, _ = mimetypes.guess_type(os.fspath(path))
    if guessed is None:
        logger.debug("No media type known for %r, using %s", path, APPLICATION_OCTET_STREAM)
        return APPLICATION_OCTET_STREAM
    return MimeType.parse(guessed)


def header_name(name: str) -> str:
    """
    Validate a header name and return it in its canonical lower-case form.
    """
    if isinstance(name, bytes):
        name = name.decode("latin-1")
    if not is_token(name):
        raise InvalidHeaderError("Invalid header name: %r" % (name,))
    return name.lower()


def header_value(value: str | bytes) -> bytes:
    """
    Validate a header value and return its raw bytes.  Text values are
    encoded as UTF-8; control characters other than tab are rejected.
    """
    if isinstance(value, str):
        value = value.encode("utf-8")
    elif not isinstance(value, (bytes, bytearray)):
        raise InvalidHeaderError("Header value must be str or bytes, not %r" % (value,))

    for c in value:
        if (c < SPACE and c != TAB) or c == DEL:
            raise InvalidHeaderError("Invalid character %r in header value %r" % (bytes([c]), bytes(value)))
    return bytes(value)


def build_header_list(headers: Iterable[tuple[str, str | bytes]]) -> HeaderList:
    """
    Validate a sequence of ``(name, value)`` pairs.  Order is kept and
    repeated names are allowed.
    """
    return [(header_name(k), header_value(v)) for k, v in headers]
