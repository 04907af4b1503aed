# outcome.py - turn a finished pipeline into a result or an ExecutionFailed
import shlex

from errors import ExecutionFailed


class Outcome:
    def __init__(self, commands, status, success, stdout=None, stderr=None,
                 stdout_streamed=False, stderr_streamed=False):
        self.commands = commands
        self.status = status
        self.success = success
        self.stdout = stdout
        self.stderr = stderr
        self.stdout_streamed = stdout_streamed
        self.stderr_streamed = stderr_streamed

    def __repr__(self):
        return f"Outcome(success={self.success}, {self.status!r}, commands={self.commands!r})"


def render_pipeline(commands):
    """Copy-pasteable shell rendering, e.g. ``ls -la | grep 'a b'``."""
    return " | ".join(shlex.join(command) for command in commands)


def error_excerpt(stderr, streamed):
    if streamed:
        return " (error output streamed away)"
    if isinstance(stderr, bytes):
        stderr = stderr.decode("utf-8", "replace")
    # only "\n" ends a line; a lone "\r" is part of it
    lines = (stderr or "").rstrip("\n").split("\n")
    if lines == [""]:
        return " (no error output)"
    if len(lines) > 1:
        return f": {lines[0]} (...)"
    return f": {lines[0]}"


def failure_message(outcome):
    return (f'Execution of "{render_pipeline(outcome.commands)}" failed with '
            f"{outcome.status.describe()}{error_excerpt(outcome.stderr, outcome.stderr_streamed)}.")


def is_allowed(status, allowed_exitstatus):
    if status.success:
        return True
    if allowed_exitstatus is None:
        return False
    if callable(allowed_exitstatus):
        return bool(allowed_exitstatus(status.returncode))
    if status.exitstatus is None:
        return False
    if isinstance(allowed_exitstatus, int):
        return status.exitstatus == allowed_exitstatus
    return status.exitstatus in allowed_exitstatus


def build_outcome(pipeline, stdout_sink, stderr_sink, recorder, allowed_exitstatus=None, text=True):
    """Reap the pipeline and classify it. Records the status exactly once."""
    stages = pipeline.stages
    status = stages.wait(stages.terminal)
    # earlier stages are not evaluated but must not be left as zombies
    stages.reap_all()
    recorder.record_status(status)
    return Outcome(
        pipeline.commands,
        status,
        is_allowed(status, allowed_exitstatus),
        stdout=stdout_sink.value(text),
        stderr=stderr_sink.value(text),
        stdout_streamed=stdout_sink.streamed,
        stderr_streamed=stderr_sink.streamed,
    )


def raise_for_outcome(outcome):
    if not outcome.success:
        raise ExecutionFailed(outcome.commands, outcome.status, outcome.stdout,
                              outcome.stderr, failure_message(outcome))
    return outcome


def result_value(outcome, capture_stdout, capture_stderr, with_status=False):
    values = []
    if capture_stdout:
        values.append(outcome.stdout)
    if capture_stderr:
        values.append(outcome.stderr)
    if with_status:
        values.append(outcome.status.returncode)
    if not values:
        return None
    if len(values) == 1:
        return values[0]
    return tuple(values)
