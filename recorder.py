# recorder.py - receivers of execution lifecycle events
"""Recorders.

The engine reports what it does to a recorder and leaves all formatting
to it:

    record_commands(commands)     once, before anything is spawned
    record_stdin_chunk(data)      bytes actually written to the first stage
    record_stdout_chunk(data)     bytes read from the last stage's stdout
    record_stderr_chunk(data)     bytes read from the shared stderr pipe
    record_status(status)         once, after the last stage is reaped

``LoggingRecorder`` writes complete lines to a ``logging.Logger``;
``NullRecorder`` ignores everything.
"""
import abc
import codecs
import logging

from endpoints import ENCODING, ERRORS
from outcome import render_pipeline


class Recorder(abc.ABC):
    @abc.abstractmethod
    def record_commands(self, commands):
        pass

    @abc.abstractmethod
    def record_stdin_chunk(self, data):
        pass

    @abc.abstractmethod
    def record_stdout_chunk(self, data):
        pass

    @abc.abstractmethod
    def record_stderr_chunk(self, data):
        pass

    @abc.abstractmethod
    def record_status(self, status):
        pass


class NullRecorder(Recorder):
    def record_commands(self, commands):
        pass

    def record_stdin_chunk(self, data):
        pass

    def record_stdout_chunk(self, data):
        pass

    def record_stderr_chunk(self, data):
        pass

    def record_status(self, status):
        pass


class _LineBuffer:
    """Splits a byte stream into complete lines, keeping the unterminated tail."""

    def __init__(self, emit):
        self._emit = emit
        self._decoder = codecs.getincrementaldecoder(ENCODING)(ERRORS)
        self._tail = ""

    def feed(self, data):
        if isinstance(data, str):
            text = data
        else:
            text = self._decoder.decode(data)
        lines = (self._tail + text).split("\n")
        self._tail = lines.pop()
        for line in lines:
            self._emit(line)

    def flush(self):
        self._tail += self._decoder.decode(b"", final=True)
        if self._tail:
            self._emit(self._tail)
            self._tail = ""


class LoggingRecorder(Recorder):
    def __init__(self, logger, level_info=logging.INFO, level_error=logging.ERROR):
        self.logger = logger
        self.level_info = level_info
        self.level_error = level_error
        self._stdin = _LineBuffer(lambda line: self._log(level_info, "Standard input: " + line))
        self._stdout = _LineBuffer(lambda line: self._log(level_info, "Standard output: " + line))
        self._stderr = _LineBuffer(lambda line: self._log(level_error, "Error output: " + line))

    def _log(self, level, message):
        self.logger.log(level, message)

    def record_commands(self, commands):
        self._log(self.level_info, f'Executing "{render_pipeline(commands)}".')

    def record_stdin_chunk(self, data):
        self._stdin.feed(data)

    def record_stdout_chunk(self, data):
        self._stdout.feed(data)

    def record_stderr_chunk(self, data):
        self._stderr.feed(data)

    def record_status(self, status):
        for buffer in (self._stdin, self._stdout, self._stderr):
            buffer.flush()
        shown = status.exitstatus if status.termsig is None else status.describe()
        level = self.level_info if status.success else self.level_error
        self._log(level, f"Status: {shown}")
