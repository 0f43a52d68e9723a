import base64
import gzip
import io
import zlib


class CodecError(ValueError):
    """A record payload could not be decoded or decompressed."""


class DecodeError(CodecError):
    pass


class DecompressError(CodecError):
    pass


def decode(text) -> bytes:
    # line breaks are ignored, anything else outside the alphabet is rejected
    if isinstance(text, str):
        text = text.replace("\r", "").replace("\n", "")
    elif isinstance(text, bytes):
        text = text.replace(b"\r", b"").replace(b"\n", b"")
    try:
        return base64.b64decode(text, validate=True)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"invalid base64 payload: {exc}") from exc


def decompress(raw: bytes) -> bytes:
    try:
        return gzip.GzipFile(fileobj=io.BytesIO(raw)).read()
    except (OSError, EOFError, zlib.error) as exc:
        raise DecompressError(f"invalid gzip payload: {exc}") from exc


def decode_and_decompress(text) -> bytes:
    return decompress(decode(text))


def encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("utf-8")
