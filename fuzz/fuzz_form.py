import io
import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from multipart_body.multipart import Form, Part, StreamingForm, StreamingPart


def build_forms(fdp: EnhancedDataProvider) -> tuple[Form, StreamingForm]:
    boundary = "--FormBoundary" + fdp.ConsumeToken(10)
    form = Form(boundary=boundary)
    streaming = StreamingForm(boundary=boundary)

    for _ in range(fdp.ConsumeIntInRange(0, 5)):
        key = fdp.ConsumeToken()
        content = fdp.ConsumeRandomBytes()
        filename = fdp.ConsumeToken() if fdp.ConsumeBool() else None

        part = Part(key, content)
        if fdp.ConsumeBool():
            spart = StreamingPart.from_reader(key, io.BytesIO(content))
        else:
            spart = StreamingPart.text(key, content)
        if filename is not None:
            part.filename(filename)
            spart.filename(filename)

        form.part(part)
        streaming.part(spart)

    return form, streaming


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    form, streaming = build_forms(fdp)
    buffer_size = fdp.ConsumeIntInRange(1, 1024)

    expected = form.build()
    out = bytearray()
    with streaming.into_reader() as reader:
        while True:
            chunk = reader.read(buffer_size)
            if not chunk:
                break
            out += chunk

    assert bytes(out) == expected, "streaming output differs from the eager encoder"


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
