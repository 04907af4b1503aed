# endpoints.py - where a pipeline's input comes from and where its output goes
"""Stream endpoints.

Every endpoint is tagged explicitly by the caller:

    Fixed(data)       stdin only: feed a str/bytes value verbatim
    External(handle)  stdin: read from handle; stdout/stderr: write to handle
    Capture()         stdout/stderr: buffer everything in memory
    Discard()         stdout/stderr: do not return the data (it is still
                      kept until the call ends so a failure can report it)

``open_source`` / ``open_sink`` turn an endpoint into the small runtime
object the relay loop talks to (always bytes on the relay side).
"""
from __future__ import annotations

import codecs
import io

ENCODING = "utf-8"
ERRORS = "surrogateescape"


class Endpoint:
    __slots__ = ()

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self):
        return hash((type(self), self._key()))

    def _key(self):
        return ()

    def __repr__(self):
        return f"{type(self).__name__}()"


class Discard(Endpoint):
    __slots__ = ()


class Capture(Endpoint):
    __slots__ = ()


class Fixed(Endpoint):
    __slots__ = ("data",)

    def __init__(self, data=""):
        if not isinstance(data, (str, bytes, bytearray)):
            raise TypeError(f"Fixed input must be str or bytes, not {type(data).__name__}")
        self.data = data

    def _key(self):
        return (self.data,)

    def __repr__(self):
        return f"Fixed({self.data!r})"


class External(Endpoint):
    """A caller-owned handle. The engine reads or writes it but never closes it."""
    __slots__ = ("handle",)

    def __init__(self, handle):
        self.handle = handle

    def _key(self):
        return (id(self.handle),)

    def __repr__(self):
        return f"External({self.handle!r})"


DISCARD = Discard()
CAPTURE = Capture()


def input_endpoint(value) -> Endpoint:
    if isinstance(value, (Fixed, External)):
        return value
    if isinstance(value, (str, bytes, bytearray)):
        return Fixed(value)
    if value is None:
        return Fixed("")
    raise TypeError(
        f"stdin must be str, bytes, Fixed or External, not {type(value).__name__}")


def output_endpoint(value) -> Endpoint:
    if isinstance(value, (Discard, Capture, External)):
        return value
    if value is None:
        return DISCARD
    if value == "capture":
        return CAPTURE
    raise TypeError(
        f"output endpoint must be None, 'capture', Discard, Capture or External, "
        f"not {value!r}")


def is_text_handle(handle) -> bool:
    return isinstance(handle, io.TextIOBase)


# -----------------------
# Runtime adapters
# -----------------------
class FixedSource:
    def __init__(self, data):
        if isinstance(data, str):
            data = data.encode(ENCODING, ERRORS)
        self._view = memoryview(bytes(data))
        self._pos = 0

    def read_chunk(self, size: int) -> bytes:
        chunk = self._view[self._pos:self._pos + size].tobytes()
        self._pos += len(chunk)
        return chunk


class HandleSource:
    """Reads a caller's handle. Text handles backed by a binary ``buffer``
    are read through it, so nothing waits for a full chunk of characters."""

    def __init__(self, handle):
        self._text = False
        if is_text_handle(handle):
            buffer = getattr(handle, "buffer", None)
            if buffer is not None:
                handle = buffer
            else:
                self._text = True
        self._handle = handle
        # buffered binary streams: return what is available instead of waiting for a full chunk
        self._read = handle.read if self._text else getattr(handle, "read1", handle.read)

    def read_chunk(self, size: int) -> bytes:
        data = self._read(size)
        if not data:
            return b""
        if self._text or isinstance(data, str):
            return data.encode(ENCODING, ERRORS)
        return bytes(data)


class CaptureSink:
    streamed = False

    def __init__(self):
        self._buffer = bytearray()

    def write(self, data: bytes):
        self._buffer += data

    def finish(self):
        pass

    def value(self, text: bool):
        data = bytes(self._buffer)
        return data.decode(ENCODING, ERRORS) if text else data


class DiscardSink(CaptureSink):
    """Not returned to the caller, but kept for the failure report."""


class HandleSink:
    """Writes to a caller's handle.

    Text handles with a binary ``buffer`` get the raw bytes there. Pure text
    handles get decoded text; bytes that are not UTF-8 become U+FFFD unless
    the handle itself was opened with ``surrogateescape``.
    """
    streamed = True

    def __init__(self, handle):
        self._handle = handle
        self._target = handle
        self._decoder = None
        if is_text_handle(handle):
            buffer = getattr(handle, "buffer", None)
            if buffer is not None:
                self._target = buffer
            else:
                errors = ERRORS if getattr(handle, "errors", None) == ERRORS else "replace"
                self._decoder = codecs.getincrementaldecoder(ENCODING)(errors)

    def write(self, data: bytes):
        if self._decoder is not None:
            text = self._decoder.decode(data)
            if text:
                self._handle.write(text)
            return
        if self._target is not self._handle:
            # text already written to the wrapper goes out first
            self._handle.flush()
        self._target.write(data)

    def finish(self):
        if self._decoder is not None:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._handle.write(tail)
        for stream in (self._handle, self._target):
            flush = getattr(stream, "flush", None)
            if flush is not None:
                flush()

    def value(self, text: bool):
        return None


def open_source(endpoint: Endpoint):
    if isinstance(endpoint, Fixed):
        return FixedSource(endpoint.data)
    if isinstance(endpoint, External):
        return HandleSource(endpoint.handle)
    raise TypeError(f"{endpoint!r} cannot be used as an input")


def open_sink(endpoint: Endpoint):
    if isinstance(endpoint, Discard):
        return DiscardSink()
    if isinstance(endpoint, Capture):
        return CaptureSink()
    if isinstance(endpoint, External):
        return HandleSink(endpoint.handle)
    raise TypeError(f"{endpoint!r} cannot be used as an output")
