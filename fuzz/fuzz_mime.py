import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from multipart_body.exceptions import MimeParseError
    from multipart_body.headers import MimeType


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    try:
        mime = MimeType.parse(fdp.ConsumeRandomString())
    except MimeParseError:
        return

    # Whatever parses must survive a round trip through its own rendering.
    assert MimeType.parse(str(mime)) == mime


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
