# external_runner.py
"""Run external programs, optionally piped together, without a shell.

    >>> run("echo", "-n", "hi", stdout="capture")
    'hi'
    >>> run(["printf", "b\\na\\n"], ["sort"], stdout=CAPTURE)
    'a\\nb\\n'

Arguments are handed to the operating system verbatim, so quoting, globs
and ``$VARS`` mean nothing special. A terminal stage exiting with a
status outside ``allowed_exitstatus`` raises ``ExecutionFailed``.

There is no default timeout: a child that never exits blocks ``run``
until it does, unless ``timeout`` is given.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import signal
from typing import Any, Callable, Container, Mapping, Optional, Union

import Interrupt
from endpoints import CAPTURE, DISCARD, Capture, open_sink, open_source, input_endpoint, output_endpoint
from errors import ExecutionTimedOut
from io_relay import relay
from outcome import build_outcome, raise_for_outcome, result_value
from pipeline_builder import build_pipeline
from process_launcher import NOT_FOUND
from recorder import LoggingRecorder, NullRecorder, Recorder

__all__ = ["run", "RunOptions", "DEFAULT_OPTIONS", "NOT_FOUND", "CAPTURE", "DISCARD"]

AllowedStatuses = Union[int, Container[int], Callable[[int], bool]]


@dataclasses.dataclass(frozen=True)
class RunOptions:
    """Everything ``run`` can be told besides the commands themselves."""

    stdin: Any = ""
    stdout: Any = DISCARD
    stderr: Any = DISCARD
    env: Mapping[str, Optional[str]] = dataclasses.field(default_factory=dict)
    chroot: str = "/"
    allowed_exitstatus: Optional[AllowedStatuses] = None
    logger: Optional[logging.Logger] = None
    logger_level_info: int = logging.INFO
    logger_level_error: int = logging.ERROR
    recorder: Optional[Recorder] = None
    text: bool = True
    timeout: Optional[float] = None

    def merged(self, **overrides) -> "RunOptions":
        return dataclasses.replace(self, **overrides) if overrides else self

    def make_recorder(self) -> Recorder:
        if self.recorder is not None:
            return self.recorder
        if self.logger is not None:
            return LoggingRecorder(self.logger, self.logger_level_info, self.logger_level_error)
        return NullRecorder()


DEFAULT_OPTIONS = RunOptions()


def _argument(value) -> str:
    value = os.fspath(value)
    if not isinstance(value, str):
        raise TypeError(f"command arguments must be str, not {type(value).__name__}")
    return value


def normalize_commands(args) -> list[list[str]]:
    """``("ls", "-l")`` or ``(["ls", "-l"],)`` or ``(["ls"], ["wc"])`` -> list of argv lists."""
    if not args:
        raise ValueError("no command given")
    if isinstance(args[0], (list, tuple)):
        commands = []
        for command in args:
            if not isinstance(command, (list, tuple)):
                raise TypeError("piped commands must all be lists or tuples")
            commands.append([_argument(a) for a in command])
    else:
        commands = [[_argument(a) for a in args]]
    for command in commands:
        if not command:
            raise ValueError("empty command in pipeline")
    return commands


def run(*commands, options: Optional[RunOptions] = None, **overrides):
    """Run a command (or a pipeline of commands) and return what was captured.

    Returns ``None`` when nothing is captured, the captured value when one of
    stdout/stderr is captured and ``(stdout, stderr)`` when both are. With
    ``allowed_exitstatus`` set, the exit status is appended to that.
    """
    opts = (options or DEFAULT_OPTIONS).merged(**overrides)
    commands = normalize_commands(commands)
    stdin = input_endpoint(opts.stdin)
    stdout = output_endpoint(opts.stdout)
    stderr = output_endpoint(opts.stderr)
    recorder = opts.make_recorder()

    source = open_source(stdin)
    stdout_sink = open_sink(stdout)
    stderr_sink = open_sink(stderr)

    recorder.record_commands(commands)
    pipeline = build_pipeline(commands, chroot=opts.chroot, env=opts.env)
    try:
        with Interrupt.forward_interrupts(pipeline.stages):
            relay(pipeline, source, stdout_sink, stderr_sink, recorder, timeout=opts.timeout)
    except ExecutionTimedOut as e:
        Interrupt.kill_pipeline(pipeline.stages)
        e.stdout = stdout_sink.value(opts.text)
        e.stderr = stderr_sink.value(opts.text)
        raise
    except BaseException:
        Interrupt.kill_pipeline(pipeline.stages, signal.SIGKILL, grace=0)
        raise
    finally:
        pipeline.close()
        stdout_sink.finish()
        stderr_sink.finish()

    outcome = build_outcome(pipeline, stdout_sink, stderr_sink, recorder,
                            allowed_exitstatus=opts.allowed_exitstatus, text=opts.text)
    raise_for_outcome(outcome)
    return result_value(outcome,
                        capture_stdout=isinstance(stdout, Capture),
                        capture_stderr=isinstance(stderr, Capture),
                        with_status=opts.allowed_exitstatus is not None)
