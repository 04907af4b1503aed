# process_subsystem.py - bookkeeping for the processes of one pipeline

import logging
import os
import shlex
import signal

logger = logging.getLogger(__name__)


class ExitStatus:
    """Outcome of a reaped process: a normal exit code or a terminating signal."""

    def __init__(self, pid, exitstatus=None, termsig=None):
        self.pid = pid
        self.exitstatus = exitstatus
        self.termsig = termsig

    @classmethod
    def from_wait_status(cls, pid, wait_status):
        if os.WIFSIGNALED(wait_status):
            return cls(pid, termsig=os.WTERMSIG(wait_status))
        if os.WIFEXITED(wait_status):
            return cls(pid, exitstatus=os.WEXITSTATUS(wait_status))
        raise ValueError(f"process {pid} has not terminated (wait status {wait_status})")

    @property
    def success(self):
        return self.exitstatus == 0

    @property
    def returncode(self):
        # same convention as subprocess: negative signal number when signalled
        if self.termsig is not None:
            return -self.termsig
        return self.exitstatus

    def describe(self):
        if self.termsig is not None:
            try:
                name = signal.Signals(self.termsig).name
            except ValueError:
                return f"signal {self.termsig}"
            return f"signal {self.termsig} ({name})"
        return f"status {self.exitstatus}"

    def __eq__(self, other):
        if not isinstance(other, ExitStatus):
            return NotImplemented
        return (self.pid, self.exitstatus, self.termsig) == (other.pid, other.exitstatus, other.termsig)

    def __repr__(self):
        return f"ExitStatus(pid={self.pid}, {self.describe()})"


class Stage:
    def __init__(self, index, argv, pid):
        self.index = index
        self.argv = list(argv)
        self.pid = pid
        self.status = None      # ExitStatus once reaped

    @property
    def reaped(self):
        return self.status is not None

    def __str__(self):
        state = "Running" if self.status is None else self.status.describe()
        return f"[{self.index}] {self.pid}\t{state:<10} {shlex.join(self.argv)}"


class StageTable:
    """Every process spawned for one invocation, in pipeline order.

    All stages share one process group whose id is the first stage's pid.
    """

    def __init__(self):
        self.stages = []
        self.pgid = None

    def register(self, argv, pid):
        stage = Stage(len(self.stages), argv, pid)
        self.stages.append(stage)
        if self.pgid is None:
            self.pgid = pid
        logger.debug("spawned stage %s", stage)
        return stage

    @property
    def terminal(self):
        return self.stages[-1]

    def __iter__(self):
        return iter(self.stages)

    def __len__(self):
        return len(self.stages)

    def wait(self, stage):
        if stage.status is None:
            pid, wait_status = os.waitpid(stage.pid, 0)
            stage.status = ExitStatus.from_wait_status(pid, wait_status)
            logger.debug("reaped stage %s", stage)
        return stage.status

    def poll(self, stage):
        """Reap ``stage`` if it has exited; never blocks."""
        if stage.status is None:
            pid, wait_status = os.waitpid(stage.pid, os.WNOHANG)
            if pid != 0:
                stage.status = ExitStatus.from_wait_status(pid, wait_status)
                logger.debug("reaped stage %s", stage)
        return stage.status

    def running(self):
        return [stage for stage in self.stages if self.poll(stage) is None]

    def reap_all(self):
        for stage in self.stages:
            self.wait(stage)

    def signal_all(self, sig):
        """Send ``sig`` to every stage that has not been reaped yet."""
        if self.pgid is not None and not all(s.reaped for s in self.stages):
            try:
                os.killpg(self.pgid, sig)
                return
            except (ProcessLookupError, PermissionError):
                pass
        for stage in self.stages:
            if stage.reaped:
                continue
            try:
                os.kill(stage.pid, sig)
            except ProcessLookupError:
                pass
