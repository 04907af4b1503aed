# io_relay.py - feed the pipeline's stdin and drain its outputs without deadlocking
"""Readiness loop between the caller's endpoints and a running pipeline.

Writing all of stdin first and reading the outputs afterwards (or any
other fixed order) deadlocks as soon as a pipe buffer fills up: the child
blocks writing its stdout while we block writing its stdin. So we select()
on all three pipes and only ever do one bounded read or write on a
descriptor that is ready.

At most one chunk of input is in flight; a short write keeps the unwritten
rest for the next round instead of pulling more from the source.
"""
import logging
import os
import select
import time

from errors import ExecutionTimedOut, RelayError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


def _close(pipeline, attr):
    fd = getattr(pipeline, attr)
    if fd is not None:
        setattr(pipeline, attr, None)
        os.close(fd)


def relay(pipeline, source, stdout_sink, stderr_sink, recorder, timeout=None,
          chunk_size=CHUNK_SIZE):
    outputs = {
        pipeline.stdout_fd: ("stdout_fd", stdout_sink, recorder.record_stdout_chunk),
        pipeline.stderr_fd: ("stderr_fd", stderr_sink, recorder.record_stderr_chunk),
    }
    readable = [pipeline.stdout_fd, pipeline.stderr_fd]
    writable = [pipeline.stdin_fd]
    os.set_blocking(pipeline.stdin_fd, False)
    deadline = None if timeout is None else time.monotonic() + timeout
    pending = memoryview(b"")

    while readable or writable:
        wait = None
        if deadline is not None:
            wait = max(0.0, deadline - time.monotonic())

        ready_r, ready_w, ready_x = select.select(readable, writable, readable + writable, wait)

        if not (ready_r or ready_w or ready_x):
            raise ExecutionTimedOut(pipeline.commands, timeout)
        if ready_x:
            raise RelayError("Error when communicating with executed program.")

        for fd in ready_r:
            attr, sink, record = outputs[fd]
            data = os.read(fd, chunk_size)
            if not data:
                readable.remove(fd)
                _close(pipeline, attr)
                continue
            sink.write(data)
            record(data)

        for fd in ready_w:
            if not pending:
                pending = memoryview(source.read_chunk(chunk_size))
                if not pending:
                    writable.remove(fd)
                    _close(pipeline, "stdin_fd")
                    continue
            try:
                written = os.write(fd, pending)
            except BlockingIOError:
                continue
            except BrokenPipeError:
                logger.debug("first stage stopped reading; dropping the rest of stdin")
                pending = memoryview(b"")
                writable.remove(fd)
                _close(pipeline, "stdin_fd")
                continue
            recorder.record_stdin_chunk(pending[:written].tobytes())
            pending = pending[written:]

    logger.debug("relay finished for %d stage(s)", len(pipeline.stages))
