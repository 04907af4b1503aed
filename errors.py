# errors.py - exception taxonomy for safepipe

class SafepipeError(Exception):
    """Base class of every error raised by the engine."""


class ExecutionFailed(SafepipeError):
    """The terminal stage exited with a status that is not allowed.

    ``stdout`` / ``stderr`` hold the captured output, or ``None`` when the
    stream went to an external sink (the engine never reads those back).
    """

    def __init__(self, commands, status, stdout, stderr, message=None):
        super().__init__(message)
        self.commands = commands
        self.status = status
        self.stdout = stdout
        self.stderr = stderr

    @property
    def returncode(self):
        return self.status.returncode


class RelayError(SafepipeError, OSError):
    """Communication with the pipeline broke down (not a program failure)."""


class ExecutionTimedOut(SafepipeError):
    def __init__(self, commands, timeout, stdout=None, stderr=None):
        super().__init__(f"Execution timed out after {timeout:g} seconds.")
        self.commands = commands
        self.timeout = timeout
        self.stdout = stdout
        self.stderr = stderr
